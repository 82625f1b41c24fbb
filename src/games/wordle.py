"""
Wordle (single player): guess the 5 letter word in 6 tries.

The board has one row of letter feedback per guess. Word validity is a plain set lookup in the word list.
"""

import random
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from src.core.config import Settings
from src.core.models import GameStateModel, Grid, Move, PlayerId, Rejected
from src.core.shared_types import GameKind, MoveAction, RejectionReason
from src.games import turns
from src.games.grid import empty_grid

WORD_LENGTH = 5
MAX_GUESSES = 6

EMPTY = ""
CORRECT = "correct"
PRESENT = "present"
ABSENT = "absent"

DEFAULT_WORDS: frozenset[str] = frozenset(
    """
    about above actor acute admit adopt adult after again agent agree ahead alarm album alert alike alive allow
    alone along alter among anger angle angry apart apple apply arena argue arise array aside asset audio audit
    avoid award aware badly baker bases basic beach began begin being below bench birth black blame blind
    block blood board boost booth bound brain brand bread break breed brief bring broad broke brown build built
    buyer cable carry catch cause chain chair chart chase cheap check chest chief child china chose civil
    claim class clean clear click clock close coach coast could count court cover craft crash cream crime cross
    crowd crown curve cycle daily dance dated dealt death debut delay depth doing doubt dozen draft drama drawn
    dream dress drill drink drive drove dying eager early earth eight elite empty enemy enjoy enter entry equal
    error event every exact exist extra faith false fault fiber field fifth fifty fight final first fixed flash
    fleet floor fluid focus force forth forty forum found frame frank fraud fresh front fruit fully funny giant
    given glass globe going grace grade grand grant grass great green gross group grown guard guess guest guide
    happy heart heavy hence horse hotel house human ideal image index inner input issue joint judge known label
    large laser later laugh layer learn lease least leave legal level light limit local logic loose lower lucky
    lunch major maker march match maybe mayor meant media metal might minor minus mixed model money month moral
    motor mount mouse mouth movie music needs never newly night noise north noted novel nurse occur ocean offer
    often order other ought paint panel paper party peace phase phone photo piece pilot pitch place plain plane
    plant plate point pound power press price pride prime print prior prize proof proud prove queen quick quiet
    quite radio raise range rapid ratio reach ready refer right rival river robot rough round route royal rural
    scale scene scope score sense serve seven shall shape share sharp sheet shelf shell shift shirt shock shoot
    short shown sight since sixth sixty sized skill sleep slide small smart smile smith smoke solid solve sorry
    sound south space spare speak speed spend spent split spoke sport staff stage stake stand start state steam
    steel stick still stock stone stood store storm story strip stuck study stuff style sugar suite super sweet
    table taken taste taxes teach teeth thank theft their theme there these thick thing think third those three
    threw throw tight times tired title today topic total touch tough tower track trade train treat trend trial
    tried tries truck truly trust truth twice under undue union unity until upper upset urban usage usual valid
    value video virus visit vital voice waste watch water wheel where which while white whole whose woman women
    world worry worse worst worth would wound write wrong wrote yield young youth
    """.split()
)


def load_word_list(path: Optional[str]) -> frozenset[str]:
    """One word per line. Falls back to the built-in list when no path is configured."""
    if not path:
        return DEFAULT_WORDS
    words = {
        line.strip().lower()
        for line in Path(path).read_text(encoding="utf-8").splitlines()
    }
    return frozenset(w for w in words if len(w) == WORD_LENGTH and w.isalpha())


def score_guess(answer: str, guess: str) -> list[str]:
    """Exact matches first, then 'present' only while unmatched copies of the letter remain."""
    feedback = [ABSENT] * WORD_LENGTH
    remaining = Counter()
    for i, (a, g) in enumerate(zip(answer, guess)):
        if a == g:
            feedback[i] = CORRECT
        else:
            remaining[a] += 1
    for i, g in enumerate(guess):
        if feedback[i] != CORRECT and remaining[g] > 0:
            feedback[i] = PRESENT
            remaining[g] -= 1
    return feedback


class WordleRules:
    kind = GameKind.WORDLE

    def __init__(self, words: frozenset[str] = DEFAULT_WORDS) -> None:
        self.words = words

    def is_valid_word(self, word: str) -> bool:
        return len(word) == WORD_LENGTH and word.lower() in self.words

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        answer = rng.choice(sorted(self.words))
        return empty_grid(MAX_GUESSES, WORD_LENGTH, EMPTY), {
            "answer": answer,
            "guesses": [],
        }

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        if move.action != MoveAction.GUESS or not move.word:
            return Rejected(RejectionReason.INVALID_MOVE, "Expected a word to guess.")
        guess = move.word.strip().lower()
        if not self.is_valid_word(guess):
            return Rejected(RejectionReason.INVALID_WORD, f"{move.word!r} is not in the word list.")

        guesses: list[str] = state.extras["guesses"]
        feedback = score_guess(state.extras["answer"], guess)
        state.board[len(guesses)] = feedback
        guesses.append(guess)

        if all(mark == CORRECT for mark in feedback):
            turns.finish(state, player)
        elif len(guesses) >= MAX_GUESSES:
            turns.finish(state, None)
        return None
