# core.py
# This file is the stateless grid transition engine for the tile fusion game.
# Callers own the board, score and identity counter and thread them through.

from dataclasses import dataclass, replace
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple
import random

SPAWN_TWO_PROBABILITY = 0.9
DEFAULT_WIN_TILE = 2048


class DIRECTION(Enum):
    """Represents the possible move directions."""
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


@dataclass
class Cell:
    """One slot of the board. Empty cells have value None and identity 0."""
    value: Optional[int] = None
    identity: int = 0
    merge_source: Optional[Tuple[int, int]] = None

    @property
    def is_empty(self) -> bool:
        return self.value is None


@dataclass
class IdentityCounter:
    """Hands out tile identities. Never reused while a game is running."""
    last: int = 0

    def allocate(self) -> int:
        self.last += 1
        return self.last


class MoveResult(NamedTuple):
    board: List[List[Cell]]
    moved: bool
    score_delta: int
    reached_target: bool


Board = List[List[Cell]]

# --- Board Helper Functions ---

def get_board_size(board: Board) -> int:
    """
    Gets the size (N) of an N x N board.
    Args:
        board (Board): The game board.
    Returns:
        int: The dimension of the board.
    Raises:
        ValueError: If the board is not square or empty.
    """
    if not board or not all(len(row) == len(board) for row in board):
        raise ValueError("Board must be a non-empty square matrix.")
    return len(board)


def is_valid_tile_value(value: Optional[int]) -> bool:
    """True for None (empty) or a power of two >= 2."""
    if value is None:
        return True
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value >= 2 and value & (value - 1) == 0


def new_empty_board(size: int) -> Board:
    return [[Cell() for _ in range(size)] for _ in range(size)]


def copy_board(board: Board) -> Board:
    return [[replace(cell) for cell in row] for row in board]


def board_values(board: Board) -> List[List[Optional[int]]]:
    """Plain value grid of a board, None marking empty cells."""
    return [[cell.value for cell in row] for row in board]


def board_from_values(values: List[List[Optional[int]]],
                      identities: IdentityCounter) -> Board:
    """
    Builds a cell board from a plain value grid, allocating an identity
    for every non-empty cell in row-major order.
    Raises:
        ValueError: If the grid is not square or holds an invalid tile value.
    """
    n = get_board_size(values)
    board = new_empty_board(n)
    for r in range(n):
        for c in range(n):
            value = values[r][c]
            if not is_valid_tile_value(value):
                raise ValueError(f"Invalid tile value {value!r} at ({r}, {c}).")
            if value is not None:
                board[r][c] = Cell(value, identities.allocate())
    return board


def highest_tile(board: Board) -> int:
    return max((cell.value for row in board for cell in row if cell.value), default=0)


def clear_merge_markers(board: Board) -> None:
    """Drops the transient merge markers left by the previous move, in place."""
    for row in board:
        for cell in row:
            cell.merge_source = None

# --- Spawning ---

def get_empty_cells(board: Board) -> List[Tuple[int, int]]:
    """
    Get coordinates of empty cells in the given board.
    Args:
        board (Board): The board to check.
    Returns:
        List[Tuple[int, int]]: List of (row, col) tuples for empty cells.
    """
    n = get_board_size(board)
    empty_cells = []
    for row in range(n):
        for col in range(n):
            if board[row][col].is_empty:
                empty_cells.append((row, col))
    return empty_cells


def choose_spawn_position(empty_cells: List[Tuple[int, int]], rng) -> Tuple[int, int]:
    """Picks one of the empty positions uniformly at random."""
    return empty_cells[rng.randrange(len(empty_cells))]


def choose_spawn_value(rng) -> int:
    """2 with probability 0.9, otherwise 4."""
    return 2 if rng.random() < SPAWN_TWO_PROBABILITY else 4


def spawn_tile(board: Board, identities: IdentityCounter,
               rng=None) -> Optional[Tuple[int, int]]:
    """
    Places a new tile on a random empty cell of the board, in place.
    Args:
        board (Board): The current game board.
        identities (IdentityCounter): Source of the new tile's identity.
        rng: Object with random() and randrange(), e.g. random.Random(seed).
    Returns:
        Optional[Tuple[int, int]]: Position of the new tile, or None when
                                   the board is full and nothing was placed.
    """
    empty_cells = get_empty_cells(board)
    if not empty_cells:
        return None
    if rng is None:
        rng = random.Random()

    row, col = choose_spawn_position(empty_cells, rng)
    board[row][col] = Cell(choose_spawn_value(rng), identities.allocate())
    return row, col


def initialize_board(size: int, identities: IdentityCounter, rng=None) -> Board:
    """
    Initializes a new game board with two random tiles.
    Args:
        size (int): The dimension of the N x N game board.
        identities (IdentityCounter): Counter for the new tiles' identities.
        rng: Optional seedable random source.
    Returns:
        Board: The initial board.
    Raises:
        ValueError: If board size is not an integer of at least 2.
    """
    if isinstance(size, bool) or not isinstance(size, int) or size < 2:
        raise ValueError("Board size must be an integer of at least 2.")
    if rng is None:
        rng = random.Random()

    board = new_empty_board(size)
    spawn_tile(board, identities, rng)
    spawn_tile(board, identities, rng)
    return board

# --- Line Manipulation (Core Move Logic Helpers) ---

def _compact_line(line: List[Cell]) -> List[Cell]:
    """Slides non-empty cells to the start of the line, padding with empties."""
    compacted = [cell for cell in line if not cell.is_empty]
    compacted += [Cell() for _ in range(len(line) - len(compacted))]
    return compacted


def _merge_line(line: List[Cell], identities: IdentityCounter,
                win_tile: int) -> Tuple[List[Cell], int, bool]:
    """
    Merges adjacent equal cells of a compacted line (moving towards index 0).
    A merged cell is skipped over, so it never merges twice in one move.
    Returns:
        Tuple[List[Cell], int, bool]: Merged line, score increase and
                                      whether a merge produced win_tile.
    """
    n = len(line)
    merged_line = list(line)
    score_increase = 0
    reached_target = False

    i = 0
    while i < n - 1:
        first, second = merged_line[i], merged_line[i + 1]
        if not first.is_empty and first.value == second.value:
            merged_value = first.value * 2
            merged_line[i] = Cell(merged_value, identities.allocate(),
                                  (first.identity, second.identity))
            merged_line[i + 1] = Cell()
            score_increase += merged_value
            if merged_value == win_tile:
                reached_target = True
            i += 2
        else:
            i += 1

    return merged_line, score_increase, reached_target


def _process_single_line_leftwise(line: List[Cell], identities: IdentityCounter,
                                  win_tile: int) -> Tuple[List[Cell], int, bool, bool]:
    """
    Applies compact, merge, then compact again to a single line, moving left.
    Returns:
        Tuple[List[Cell], int, bool, bool]: The processed line, score increase,
                                            whether the line changed and whether
                                            the target tile was produced.
    """
    compacted = _compact_line(line)
    merged, score_delta, reached_target = _merge_line(compacted, identities, win_tile)
    final_line = _compact_line(merged)

    line_changed = any(
        before.value != after.value or before.merge_source != after.merge_source
        for before, after in zip(line, final_line)
    )
    return final_line, score_delta, line_changed, reached_target

# --- Board Transformations ---

def transpose_board(board: Board) -> Board:
    """
    Transposes a given board (swaps rows and columns). Cells are shared,
    not copied.
    """
    n = get_board_size(board)
    return [[board[r][c] for r in range(n)] for c in range(n)]


def reverse_rows(board: Board) -> Board:
    """Reverses each row in a given board."""
    return [row[::-1] for row in board]


def _orient(board: Board, direction: DIRECTION) -> Board:
    # Rearranges the board so that the move becomes a leftward one.
    if direction == DIRECTION.LEFT:
        return board
    if direction == DIRECTION.RIGHT:
        return reverse_rows(board)
    if direction == DIRECTION.UP:
        return transpose_board(board)
    if direction == DIRECTION.DOWN:
        return reverse_rows(transpose_board(board))
    raise ValueError("Invalid direction specified for process_move.")


def _restore(board: Board, direction: DIRECTION) -> Board:
    if direction == DIRECTION.LEFT:
        return board
    if direction == DIRECTION.RIGHT:
        return reverse_rows(board)
    if direction == DIRECTION.UP:
        return transpose_board(board)
    return transpose_board(reverse_rows(board))

# --- Core Game Move Processing ---

def process_move(board: Board, direction: DIRECTION, identities: IdentityCounter,
                 win_tile: int = DEFAULT_WIN_TILE) -> MoveResult:
    """
    Processes a move in the specified direction on a copy of the board.
    Merge markers from an earlier move are cleared before anything slides.
    Args:
        board (Board): The current game board. Left untouched.
        direction (DIRECTION): The direction to move.
        identities (IdentityCounter): Source of identities for merged cells.
        win_tile (int): Merging into this value sets reached_target.
    Returns:
        MoveResult: The new board, whether anything changed, the score
                    gained and whether the target tile was produced.
    Raises:
        ValueError: If an invalid direction is specified.
    """
    working_board = copy_board(board)
    clear_merge_markers(working_board)
    oriented = _orient(working_board, direction)

    moved = False
    reached_target = False
    score_gained = 0
    processed = []
    for line in oriented:
        final_line, line_score, line_changed, line_won = \
            _process_single_line_leftwise(line, identities, win_tile)
        processed.append(final_line)
        score_gained += line_score
        moved = moved or line_changed
        reached_target = reached_target or line_won

    if not moved:
        return MoveResult(working_board, False, 0, False)
    return MoveResult(_restore(processed, direction), True, score_gained, reached_target)

# --- Game State Checks ---

def is_move_available(board: Board) -> bool:
    """
    True if any cell is empty or two orthogonal neighbours hold equal values.
    False means no move in any direction can change the board.
    """
    n = get_board_size(board)
    for r in range(n):
        for c in range(n):
            value = board[r][c].value
            if value is None:
                return True
            if c < n - 1 and board[r][c + 1].value == value:
                return True
            if r < n - 1 and board[r + 1][c].value == value:
                return True
    return False


def is_move_possible_in_direction(board: Board, direction: DIRECTION) -> bool:
    """
    Check if any tile can move or merge in the given specific direction.
    Args:
        board (Board): The game board.
        direction (DIRECTION): The direction to check.
    Returns:
       bool: True if at least one tile can move or merge in that direction.
    """
    n = get_board_size(board)
    dr, dc = {
        DIRECTION.UP: (-1, 0),
        DIRECTION.DOWN: (1, 0),
        DIRECTION.LEFT: (0, -1),
        DIRECTION.RIGHT: (0, 1),
    }[direction]
    for r in range(n):
        for c in range(n):
            value = board[r][c].value
            if value is None:
                continue  # Only non-empty tiles can initiate a move
            nr, nc = r + dr, c + dc
            if 0 <= nr < n and 0 <= nc < n:
                neighbour = board[nr][nc].value
                if neighbour is None or neighbour == value:
                    return True
    return False


def get_valid_moves(board: Board) -> List[DIRECTION]:
    """Directions in which a move would change the board."""
    return [d for d in DIRECTION if is_move_possible_in_direction(board, d)]
