import pytest

import core


class ScriptedRandom:
    """Stand-in for random.Random that replays fixed choices."""

    def __init__(self, indexes=(0,), rolls=(0.0,)):
        self.indexes = list(indexes)
        self.rolls = list(rolls)

    def randrange(self, n):
        index = self.indexes.pop(0) if len(self.indexes) > 1 else self.indexes[0]
        return index % n

    def random(self):
        return self.rolls.pop(0) if len(self.rolls) > 1 else self.rolls[0]


def make_board(values):
    """Cell board from a value grid, identities 1..k in row-major order."""
    return core.board_from_values(values, core.IdentityCounter())


@pytest.fixture()
def scripted_rng():
    return ScriptedRandom()
