import random

import numpy as np
import pytest

from tilescope.attention.selection import EpsilonGreedySelector
from tilescope.attention.tiles import ScoredTile, SelectionReason


class ForbiddenRandom(random.Random):
    """Fails the test if the selector draws any random number."""

    def random(self):
        raise AssertionError("random() must not be called")

    def randrange(self, *args, **kwargs):
        raise AssertionError("randrange() must not be called")


def make_pool(scores):
    return [
        ScoredTile(x=index * 64, y=0, size=128, histogram=np.zeros(3), divergence=0.0, smoothed_score=score)
        for index, score in enumerate(scores)
    ]


def test_greedy_selection_is_top_n_without_randomness():
    pool = make_pool([0.1, 0.5, 0.5, 0.9, 0.2])
    selector = EpsilonGreedySelector(epsilon=0.0, selection_size=3, rng=ForbiddenRandom())

    selected = selector.select(pool)

    # Ties go to the earlier pool position.
    assert [item.tile.x for item in selected] == [3 * 64, 1 * 64, 2 * 64]
    assert all(item.reason is SelectionReason.EXPLOIT for item in selected)


def test_full_exploration_returns_distinct_tiles():
    pool = make_pool([0.3] * 10)
    selector = EpsilonGreedySelector(epsilon=1.0, selection_size=10, rng=random.Random(3))

    selected = selector.select(pool)

    assert len(selected) == 10
    assert len({item.tile.x for item in selected}) == 10
    assert all(item.reason is SelectionReason.EXPLORE for item in selected)


def test_selection_stops_when_pool_is_exhausted():
    selector = EpsilonGreedySelector(epsilon=0.5, selection_size=10, rng=random.Random(0))
    selected = selector.select(make_pool([0.4, 0.2, 0.8, 0.1]))

    assert len(selected) == 4
    assert len({item.tile.x for item in selected}) == 4


def test_empty_pool_and_zero_size():
    assert EpsilonGreedySelector(selection_size=5).select([]) == ()
    assert EpsilonGreedySelector(selection_size=0).select(make_pool([1.0])) == ()


def test_seeded_selection_is_reproducible():
    pool = make_pool(list(np.linspace(0.0, 1.0, 20)))

    def picks(seed):
        selector = EpsilonGreedySelector(epsilon=0.5, selection_size=8, rng=random.Random(seed))
        return [(item.tile.x, item.reason) for item in selector.select(pool)]

    assert picks(11) == picks(11)


def test_mixed_selection_tags_reasons():
    pool = make_pool(list(np.linspace(0.0, 1.0, 20)))
    selector = EpsilonGreedySelector(epsilon=0.5, selection_size=20, rng=random.Random(5))

    selected = selector.select(pool)
    reasons = {item.reason for item in selected}

    assert len(selected) == 20
    assert reasons <= {SelectionReason.EXPLORE, SelectionReason.EXPLOIT}


def test_tiles_without_smoothed_score_are_rejected():
    pool = make_pool([0.1]) + [ScoredTile(x=0, y=64, size=128, histogram=np.zeros(3), divergence=0.0)]
    with pytest.raises(ValueError):
        EpsilonGreedySelector(epsilon=0.0).select(pool)


@pytest.mark.parametrize("epsilon", [-0.1, 1.1])
def test_epsilon_out_of_range(epsilon):
    with pytest.raises(ValueError):
        EpsilonGreedySelector(epsilon=epsilon)
