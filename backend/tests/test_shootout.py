import pytest

from raidscore.services.scoring import IllegalTransition, InvalidInput, Shootout, ShootoutSetup
from raidscore.services.scoring.shootout import first_raiding_side


class FixedChoice:
    """Stands in for random.Random; always picks ``value``."""

    def __init__(self, value):
        self.value = value

    def choice(self, seq):
        assert self.value in seq
        return self.value


def ready_setup(roster, toss_winner='A', choice='defend'):
    setup = ShootoutSetup(roster, rng=FixedChoice(toss_winner))
    for side in ('A', 'B'):
        for pid in roster.ids(side):
            setup.toggle_player(side, pid)
        setup.next()
    for side in ('A', 'B'):
        for pid in roster.ids(side)[:5]:
            setup.toggle_raider(side, pid)
        setup.next()
    setup.toss()
    setup.choose(choice)
    return setup


def test_toss_winner_defending_means_other_team_raids_first(roster):
    setup = ready_setup(roster, 'A', 'defend')
    assert setup.step == 'ready'
    assert setup.first_raiding_side == 'B'
    shootout = setup.start()
    assert shootout.current == ('B', 'b1')


@pytest.mark.parametrize('winner,choice,first', [('A', 'raid', 'A'), ('B', 'raid', 'B'), ('B', 'defend', 'A')])
def test_first_raiding_side(winner, choice, first):
    assert first_raiding_side(winner, choice) == first


def test_squad_size_is_enforced(roster):
    big = ShootoutSetup(roster, squad_size=2)
    big.toggle_player('A', 'a1')
    big.toggle_player('A', 'a2')
    with pytest.raises(InvalidInput):
        big.toggle_player('A', 'a3')
    assert big.can_proceed()


def test_cannot_advance_with_incomplete_selection(roster):
    setup = ShootoutSetup(roster)
    setup.toggle_player('A', 'a1')
    assert not setup.can_proceed()
    with pytest.raises(InvalidInput):
        setup.next()


def test_player_must_belong_to_the_step_team(roster):
    setup = ShootoutSetup(roster)
    with pytest.raises(InvalidInput):
        setup.toggle_player('A', 'b1')
    with pytest.raises(IllegalTransition):
        setup.toggle_player('B', 'b1')


def test_raider_order_closes_gaps(roster):
    setup = ShootoutSetup(roster)
    for side in ('A', 'B'):
        for pid in roster.ids(side):
            setup.toggle_player(side, pid)
        setup.next()
    setup.toggle_raider('A', 'a3')
    setup.toggle_raider('A', 'a1')
    setup.toggle_raider('A', 'a2')
    assert setup.toggle_raider('A', 'a1') == ['a3', 'a2']
    assert setup.toggle_raider('A', 'a1') == ['a3', 'a2', 'a1']


def test_toss_and_choice_have_their_own_actions(roster):
    setup = ready_setup(roster)
    with pytest.raises(IllegalTransition):
        setup.next()
    with pytest.raises(IllegalTransition):
        setup.toss()


def test_shootout_alternates_in_fixed_order():
    shootout = Shootout(['a1', 'a2'], ['b1', 'b2'], 'A', rng=FixedChoice('A'))
    assert [s for s, _ in shootout.order] == ['A', 'B', 'A', 'B']
    shootout.record(1)
    shootout.record(0)
    with pytest.raises(InvalidInput):
        shootout.record(1, raider_id='a1')
    shootout.record(1, raider_id='a2')
    shootout.record(0)
    assert shootout.phase == 'complete'
    assert shootout.winner == 'A'
    assert shootout.scores == {'A': 2, 'B': 0}
    with pytest.raises(IllegalTransition):
        shootout.record(1)


def test_level_shootout_goes_to_golden_raid():
    shootout = Shootout(['a1'], ['b1'], 'B', rng=FixedChoice('A'))
    shootout.record(1)
    shootout.record(1)
    assert shootout.phase == 'golden_raid'
    assert shootout.golden_side == 'A'
    shootout.record(0, raider_id='a1')
    assert shootout.winner == 'B'
    assert shootout.scores == {'A': 1, 'B': 1}


def test_shootout_survives_serialization():
    shootout = Shootout(['a1', 'a2'], ['b1', 'b2'], 'A')
    shootout.record(2)
    restored = Shootout.from_dict(shootout.to_dict())
    assert restored.current == ('B', 'b1')
    assert restored.scores == {'A': 2, 'B': 0}


def test_negative_points_rejected():
    shootout = Shootout(['a1'], ['b1'], 'A')
    with pytest.raises(InvalidInput):
        shootout.record(-1)


def test_back_returns_to_previous_selection(roster):
    setup = ShootoutSetup(roster)
    with pytest.raises(IllegalTransition):
        setup.back()
    for pid in roster.ids('A'):
        setup.toggle_player('A', pid)
    setup.next()
    assert setup.back() == 'players_a'
    # Selections survive going back
    assert setup.players['A'] == list(roster.ids('A'))
    setup.toggle_player('A', 'a7')
    assert not setup.can_proceed()


def test_back_is_refused_after_the_toss(roster):
    setup = ready_setup(roster)
    with pytest.raises(IllegalTransition):
        setup.back()
