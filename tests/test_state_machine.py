"""Tests for the playback state machine transition table."""

import itertools

import pytest

from nielsen_bridge.core.state_machine import PlaybackState, PlaybackStateMachine

ALLOWED = {
    (PlaybackState.IDLE, PlaybackState.PLAYING),
    (PlaybackState.IDLE, PlaybackState.STOPPED),
    (PlaybackState.PLAYING, PlaybackState.STOPPED),
    (PlaybackState.PLAYING, PlaybackState.ENDED),
    (PlaybackState.STOPPED, PlaybackState.PLAYING),
    (PlaybackState.STOPPED, PlaybackState.ENDED),
    (PlaybackState.ENDED, PlaybackState.IDLE),
    (PlaybackState.ENDED, PlaybackState.PLAYING),
}

# Shortest path from IDLE to each state
_PATHS = {
    PlaybackState.IDLE: [],
    PlaybackState.PLAYING: [PlaybackState.PLAYING],
    PlaybackState.STOPPED: [PlaybackState.STOPPED],
    PlaybackState.ENDED: [PlaybackState.PLAYING, PlaybackState.ENDED],
}


def machine_in(state: PlaybackState) -> PlaybackStateMachine:
    sm = PlaybackStateMachine()
    for step in _PATHS[state]:
        assert sm.transition_to(step)
    assert sm.current_state == state
    return sm


def test_starts_idle():
    assert PlaybackStateMachine().current_state == PlaybackState.IDLE


@pytest.mark.parametrize(
    "source,target", list(itertools.product(PlaybackState, PlaybackState))
)
def test_transition_table(source, target):
    sm = machine_in(source)
    accepted = sm.transition_to(target)
    assert accepted == ((source, target) in ALLOWED)
    assert sm.current_state == (target if accepted else source)


@pytest.mark.parametrize("state", list(PlaybackState))
def test_self_transition_is_rejected(state):
    sm = machine_in(state)
    assert sm.transition_to(state) is False
    assert sm.current_state == state


def test_wrappers_map_to_targets():
    sm = PlaybackStateMachine()
    assert sm.on_play()
    assert sm.current_state == PlaybackState.PLAYING
    assert sm.on_stop()
    assert sm.current_state == PlaybackState.STOPPED
    assert sm.on_end()
    assert sm.current_state == PlaybackState.ENDED


def test_repeated_play_only_accepted_once():
    sm = PlaybackStateMachine()
    assert [sm.on_play() for _ in range(3)] == [True, False, False]


def test_replay_after_end():
    sm = machine_in(PlaybackState.ENDED)
    assert sm.on_stop() is False
    assert sm.on_play()
    assert sm.current_state == PlaybackState.PLAYING


def test_history_records_accepted_transitions_only():
    sm = PlaybackStateMachine()
    sm.on_play()
    sm.on_play()
    sm.on_end()
    assert [(h["from"], h["to"]) for h in sm.history] == [
        ("idle", "playing"),
        ("playing", "ended"),
    ]
