# session.py
# Caller-side game state: owns the board, score, phase and identity counter,
# and runs the full turn pipeline (move, spawn, terminal check) on top of core.

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, NamedTuple, Optional, Tuple
import logging
import math
import time

import core

logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT = 45


class GamePhase(Enum):
    """Lifecycle of one run. WON and LOST are terminal until a new game."""
    IDLE = "idle"
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


TERMINAL_PHASES = (GamePhase.WON, GamePhase.LOST)


@dataclass
class GameState:
    board: core.Board
    score: int = 0
    phase: GamePhase = GamePhase.IDLE
    identities: core.IdentityCounter = field(default_factory=core.IdentityCounter)
    win_tile: int = core.DEFAULT_WIN_TILE

    @property
    def next_identity(self) -> int:
        return self.identities.last + 1

    @property
    def is_over(self) -> bool:
        return self.phase in TERMINAL_PHASES


class TurnOutcome(NamedTuple):
    moved: bool
    score_delta: int
    spawned: Optional[Tuple[int, int]]
    phase: GamePhase


def new_game(size: int = 4, win_tile: int = core.DEFAULT_WIN_TILE, rng=None) -> GameState:
    """
    Creates a fresh IDLE game with two spawned tiles and a new identity counter.
    Raises:
        ValueError: If size is not an integer of at least 2.
    """
    identities = core.IdentityCounter()
    board = core.initialize_board(size, identities, rng)
    return GameState(board=board, identities=identities, win_tile=win_tile)


def apply_move(state: GameState, direction: core.DIRECTION, rng=None) -> TurnOutcome:
    """
    Runs one full turn on the state, in place.

    The first attempted move turns an IDLE game ACTIVE. A move that changes
    nothing spawns nothing. A merge reaching the win tile ends the game as WON
    straight away with the board frozen; otherwise a tile is spawned and the
    game is LOST when no move remains afterwards. Moves on a finished game
    are ignored.
    """
    if state.is_over:
        logger.debug("Ignoring %s move on a finished game (%s)", direction.value, state.phase.value)
        return TurnOutcome(False, 0, None, state.phase)

    if state.phase == GamePhase.IDLE:
        state.phase = GamePhase.ACTIVE

    core.clear_merge_markers(state.board)
    result = core.process_move(state.board, direction, state.identities, state.win_tile)
    if not result.moved:
        return TurnOutcome(False, 0, None, state.phase)

    state.board = result.board
    state.score += result.score_delta

    if result.reached_target:
        state.phase = GamePhase.WON
        logger.info("Reached %d with score %d", state.win_tile, state.score)
        return TurnOutcome(True, result.score_delta, None, state.phase)

    spawned = core.spawn_tile(state.board, state.identities, rng)
    if not core.is_move_available(state.board):
        state.phase = GamePhase.LOST
        logger.info("No moves left, final score %d", state.score)

    return TurnOutcome(True, result.score_delta, spawned, state.phase)


def expire(state: GameState) -> GamePhase:
    """Ends an ACTIVE game as LOST when the caller's timer runs out."""
    if state.phase == GamePhase.ACTIVE:
        state.phase = GamePhase.LOST
        logger.info("Time is up, final score %d", state.score)
    return state.phase


class GameTimer:
    """
    Countdown that starts on the first move. The engine has no notion of
    time; this is the caller's policy. All readings are whole seconds.
    """

    def __init__(self, time_limit: int = DEFAULT_TIME_LIMIT,
                 clock: Callable[[], float] = time.monotonic):
        self.time_limit = time_limit
        self._clock = clock
        self._started_at = None
        self._stopped_at = None

    @property
    def started(self) -> bool:
        return self._started_at is not None

    def start(self):
        if not self.started:
            self._started_at = self._clock()

    def stop(self):
        if self.started and self._stopped_at is None:
            self._stopped_at = self._clock()

    def elapsed(self) -> int:
        if not self.started:
            return 0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return min(int(math.floor(end - self._started_at)), self.time_limit)

    def time_left(self) -> int:
        return max(0, self.time_limit - self.elapsed())

    def expired(self) -> bool:
        return self.started and self.time_left() == 0
