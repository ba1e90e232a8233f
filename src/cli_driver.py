# cli_driver.py
# This file is intended to be run to play the tile fusion game on the CLI

import argparse
import random
from typing import Optional, Tuple

import core
import leaderboard
import session
from settings import Settings, configure_logging

DIRECTION_KEYS = {'W': core.DIRECTION.UP, 'A': core.DIRECTION.LEFT,
                  'S': core.DIRECTION.DOWN, 'D': core.DIRECTION.RIGHT}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Tile Fusion - 2048 against the clock")
    parser.add_argument('--size', type=int, default=Settings.BOARD_SIZE,
                        help="Dimension of the N x N board")
    parser.add_argument('--win-tile', type=int, default=Settings.WIN_TILE,
                        help="Tile value that wins the game (e.g. 32 for a quick test)")
    parser.add_argument('--time-limit', type=int, default=Settings.TIME_LIMIT_SEC,
                        help="Seconds on the clock, counted from the first move")
    parser.add_argument('--seed', type=int, default=None,
                        help="Seed for tile spawning, for reproducible games")
    parser.add_argument('--no-leaderboard', action='store_true',
                        help="Don't offer to save the score or show the leaderboard")
    return parser.parse_args(argv)


def play(args, rng) -> Optional[Tuple[session.GameState, Optional[int]]]:
    """
    Runs one game. Returns the finished state with the seconds taken to win
    (None for a loss), or None if the player quit.
    """
    state = session.new_game(args.size, args.win_tile, rng)
    timer = session.GameTimer(args.time_limit)
    display_board_state(state, timer)

    while not state.is_over:
        move_input = input("Enter move (W/A/S/D for Up/Left/Down/Right, R to restart, Q to quit): ").strip().upper()

        if timer.expired():
            session.expire(state)
            break

        if move_input == 'Q':
            print("Quitting game.")
            return None
        if move_input == 'R':
            state = session.new_game(args.size, args.win_tile, rng)
            timer = session.GameTimer(args.time_limit)
            display_board_state(state, timer)
            continue

        chosen_direction = DIRECTION_KEYS.get(move_input)
        if not chosen_direction:
            print("Invalid input. Use W, A, S, D.")
            continue

        timer.start()
        outcome = session.apply_move(state, chosen_direction, rng)
        if not outcome.moved:
            print("Move did not change the board. Try a different direction.")

        display_board_state(state, timer)

    timer.stop()
    print("\n--- Final Board State ---")
    display_board_state(state, timer)
    if state.phase == session.GamePhase.WON:
        print(f"Congratulations! You reached {state.win_tile} in {timer.elapsed()} seconds!")
    elif timer.expired():
        print("Time is up!")
    else:
        print("No more moves possible. Better luck next time!")

    time_taken = timer.elapsed() if state.phase == session.GamePhase.WON else None
    return state, time_taken


def offer_submission(ranking: leaderboard.Leaderboard, score: int, time_taken: Optional[int]):
    nickname = input("Enter your nickname to save your score (blank to skip): ")
    if not nickname.strip():
        return
    try:
        ranking.submit_score(nickname, score, time_taken)
        print("Score saved successfully!")
    except leaderboard.ValidationError as e:
        print(f"Score rejected: {e}")
    except leaderboard.BackendError as e:
        print(f"Failed to save score, try again later: {e}")


def display_leaderboard(ranking: leaderboard.Leaderboard, limit: int = Settings.LEADERBOARD_LIMIT):
    records = ranking.list_scores(limit)
    print("\n--- Leaderboard ---")
    if not records:
        print("No scores yet. Be the first!")
        return
    print("Rank\tNickname\tScore\tSpeed (s)")
    for rank, record in enumerate(records, start=1):
        speed = record.time_taken if record.time_taken is not None else "-"
        print(f"{rank}\t{record.nickname}\t{record.score}\t{speed}")


# --- Display Function (Example of external usage) ---
def display_board_state(state: session.GameState, timer: session.GameTimer):
    """Prints the board, score, time left and game status to the console."""
    print(f"\nScore: {state.score}\tTime left: {timer.time_left()}s")
    status_message = {
        session.GamePhase.IDLE: "Status: the clock starts on your first move",
        session.GamePhase.ACTIVE: f"Status: {state.phase.name}",
        session.GamePhase.WON: "YOU WON!",
        session.GamePhase.LOST: "GAME OVER!"
    }
    print(status_message.get(state.phase, f"Status: {state.phase.name} (Unknown)"))

    for row in core.board_values(state.board):
        print("\t".join("." if value is None else str(value) for value in row))
    print("-" * (len(state.board) * 6))  # Adjust width based on board size


def main(argv=None):
    args = parse_args(argv)
    configure_logging()
    rng = random.Random(args.seed)

    result = play(args, rng)
    if result is None or args.no_leaderboard:
        return

    state, time_taken = result
    ranking = leaderboard.Leaderboard(leaderboard.create_store(Settings))
    offer_submission(ranking, state.score, time_taken)
    display_leaderboard(ranking)


if __name__ == "__main__":
    main()
