from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import AliasChoices, BaseModel, Field
from typing import Any, List, Optional
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging

import core
import leaderboard
import session
from settings import Settings, configure_logging

logger = logging.getLogger(__name__)

# Initialize the rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(
    title="Tile Fusion API",
    description="A stateless API for playing the tile fusion (2048) game and keeping "
                "its leaderboard. Manage your game state (board, score, phase, "
                "next_identity) on the client side.",
    version="1.0.0"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

MAX_BOARD_SIZE = 16

_leaderboard = None


def get_leaderboard() -> leaderboard.Leaderboard:
    """Shared leaderboard built from settings on first use."""
    global _leaderboard
    if _leaderboard is None:
        _leaderboard = leaderboard.Leaderboard(leaderboard.create_store(Settings))
    return _leaderboard

# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game."""
    size: Optional[int] = Field(
        default=Settings.BOARD_SIZE,
        gt=1,  # Board size must be at least 2x2
        le=MAX_BOARD_SIZE,
        description="Size of the N x N game board (e.g., 4 for a 4x4 board)."
    )
    win_tile: Optional[int] = Field(
        default=Settings.WIN_TILE,
        gt=0,
        description="The tile value to achieve for winning the game (e.g., 2048)."
    )


class CellData(BaseModel):
    """One board slot. Empty cells have a null value."""
    value: Optional[int] = Field(default=None, description="Tile value, a power of two, or null.")
    id: int = Field(default=0, ge=0, description="Stable tile identity used for animation.")
    merged_from: Optional[List[int]] = Field(
        default=None,
        description="Identities of the two tiles merged into this one by the last move."
    )


class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    board: List[List[CellData]] = Field(..., description="The N x N game board.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    phase: session.GamePhase = Field(..., description="idle, active, won or lost.")
    next_identity: int = Field(..., ge=1, description="Identity the next new tile will get.")
    win_tile: int = Field(..., gt=0, description="The tile value required to win this game instance.")
    board_size: int = Field(..., gt=0, description="The dimension N of the N x N board.")


class MoveRequestData(BaseModel):
    """Data required to make a move."""
    board: List[List[CellData]] = Field(..., description="Current N x N game board before the move.")
    score: int = Field(..., ge=0, description="Current score before the move.")
    phase: session.GamePhase = Field(default=session.GamePhase.ACTIVE)
    next_identity: int = Field(..., ge=1)
    direction: core.DIRECTION = Field(..., description="Direction of the move (up, down, left, right).")
    win_tile: int = Field(default=Settings.WIN_TILE, gt=0, description="The win condition tile for this game instance.")


class MoveResponseData(GameStateData):
    """Response after a move, including the new game state and move effectiveness."""
    move_was_effective: bool = Field(
        ...,
        description="True if the move resulted in a change to the board state, False otherwise."
    )
    score_delta: int = Field(default=0, ge=0)
    message: Optional[str] = Field(
        default=None,
        description="An optional message, e.g., if a move was invalid or the game ended."
    )


class ScoreSubmission(BaseModel):
    """Loosely typed on purpose: the leaderboard does the validation."""
    nickname: Any = None
    score: Any = None
    time_taken: Any = Field(default=None, validation_alias=AliasChoices("time_taken", "timeTaken"))


class LeaderboardEntryData(BaseModel):
    nickname: str
    score: int
    time_taken: Optional[int] = None
    timestamp: str

# --- Conversions ---

def _state_to_data(state: session.GameState) -> dict:
    board = [
        [CellData(value=cell.value, id=cell.identity,
                  merged_from=list(cell.merge_source) if cell.merge_source else None)
         for cell in row]
        for row in state.board
    ]
    return dict(
        board=board,
        score=state.score,
        phase=state.phase,
        next_identity=state.next_identity,
        win_tile=state.win_tile,
        board_size=len(state.board),
    )


def _state_from_request(data: MoveRequestData) -> session.GameState:
    """
    Rebuilds the server-side state from the client's copy.
    Raises:
        ValueError: If the board is not square or holds an invalid tile
                    or a tile identity is reused.
    """
    if core.get_board_size(data.board) > MAX_BOARD_SIZE:
        raise ValueError(f"Board size must not exceed {MAX_BOARD_SIZE}.")
    seen_ids = set()
    board = []
    for r, row in enumerate(data.board):
        cells = []
        for c, cell in enumerate(row):
            if not core.is_valid_tile_value(cell.value):
                raise ValueError(f"Invalid tile value {cell.value!r} at ({r}, {c}).")
            if cell.value is not None and cell.id >= data.next_identity:
                raise ValueError(f"Tile identity {cell.id} at ({r}, {c}) is not below next_identity.")
            if cell.value is not None:
                if cell.id in seen_ids:
                    raise ValueError(f"Tile identity {cell.id} at ({r}, {c}) is used more than once.")
                seen_ids.add(cell.id)
            cells.append(core.Cell(cell.value, cell.id if cell.value is not None else 0))
        board.append(cells)
    return session.GameState(
        board=board,
        score=data.score,
        phase=data.phase,
        identities=core.IdentityCounter(data.next_identity - 1),
        win_tile=data.win_tile,
    )

# --- API Endpoints ---

@app.post("/game/new", response_model=GameStateData, summary="Start a New Game")
@limiter.limit(Settings.RATE_LIMIT)
async def start_new_game(request: Request, settings: NewGameSettings):
    """
    Initializes a new game based on the provided settings (size and win_tile).

    Returns the initial game state: the board with two random tiles,
    score 0, phase idle and the identity the next tile will receive.
    """
    size = settings.size if settings.size is not None else Settings.BOARD_SIZE
    win_tile = settings.win_tile if settings.win_tile is not None else Settings.WIN_TILE
    try:
        state = session.new_game(size, win_tile)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return GameStateData(**_state_to_data(state))


@app.post("/game/move", response_model=MoveResponseData, summary="Make a Move in the Game")
@limiter.limit(Settings.RATE_LIMIT)
async def make_move(request: Request, request_data: MoveRequestData):
    """
    Processes a player's move in the game.

    The API will:
    1. Slide and merge tiles in the requested direction.
    2. If the board changed and the win tile was not reached, add a new tile (2 or 4).
    3. Determine the new phase (active, won, lost).
    """
    try:
        state = _state_from_request(request_data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid board structure in request: {str(e)}")

    if state.is_over:
        return MoveResponseData(
            **_state_to_data(state),
            move_was_effective=False,
            message="The game has already ended. Start a new one.",
        )

    try:
        outcome = session.apply_move(state, request_data.direction)
    except Exception as e:
        logger.error("Unexpected error in /game/move", exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")

    message = None
    if not outcome.moved:
        message = "Move was not effective; board state unchanged by slide."
    if outcome.phase == session.GamePhase.WON:
        message = "Congratulations! You won!"
    elif outcome.phase == session.GamePhase.LOST:
        message = "Game Over. No more valid moves."

    return MoveResponseData(
        **_state_to_data(state),
        move_was_effective=outcome.moved,
        score_delta=outcome.score_delta,
        message=message,
    )


@app.get("/leaderboard", response_model=List[LeaderboardEntryData], summary="List Ranked Scores")
@limiter.limit(Settings.RATE_LIMIT)
async def list_scores(request: Request, limit: Optional[int] = None,
                      ranking: leaderboard.Leaderboard = Depends(get_leaderboard)):
    """Scores by score descending, then fastest win. Never fails on a bad read."""
    if limit is None:
        limit = Settings.LEADERBOARD_LIMIT
    if limit < 0:
        raise HTTPException(status_code=400, detail="limit must not be negative")
    return [LeaderboardEntryData(**record.to_dict()) for record in ranking.list_scores(limit)]


@app.post("/leaderboard", response_model=LeaderboardEntryData, status_code=201, summary="Submit a Score")
@limiter.limit(Settings.RATE_LIMIT)
async def submit_score(request: Request, submission: ScoreSubmission,
                       ranking: leaderboard.Leaderboard = Depends(get_leaderboard)):
    try:
        record = ranking.submit_score(submission.nickname, submission.score, submission.time_taken)
    except leaderboard.ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid data provided: {e}")
    except leaderboard.BackendError:
        logger.error("Failed to save score", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to save score")
    return LeaderboardEntryData(**record.to_dict())


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)
