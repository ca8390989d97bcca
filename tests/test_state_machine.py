"""State machine, rendering and key decoding tests."""

from __future__ import annotations

import random
import re
from collections import Counter

import pytest

import decision_maker as dm

_ANSI = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

SAMPLE_STATES: list[dm.State] = [
    dm.Idle(),
    dm.Animating(progress=0),
    dm.Animating(progress=dm.N_STEPS - 1),
    dm.Result(chosen=dm.Answer.NEVER),
    dm.HelpOverlay(previous=dm.Idle()),
    dm.HelpOverlay(previous=dm.Animating(progress=7)),
    dm.HelpOverlay(previous=dm.Result(chosen=dm.Answer.WHY_NOT)),
]
NON_OVERLAY_STATES = [s for s in SAMPLE_STATES if not isinstance(s, dm.HelpOverlay)]


def _plain(lines: list[str]) -> str:
    return "\n".join(_ANSI.sub("", line) for line in lines)


def _tick_n(state: dm.State, n: int, rng: random.Random) -> dm.State:
    for _ in range(n):
        state = dm.handle_tick(state, rng)
    return state


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


def test_six_fixed_answers_in_device_order() -> None:
    assert [a.value for a in dm.ANSWERS] == [
        "DEFINITELY",
        "FORGET IT",
        "ASK AGAIN",
        "NEVER",
        "POSSIBLY",
        "WHY NOT",
    ]


def test_draw_answer_is_roughly_uniform() -> None:
    rng = random.Random(1234)
    trials = 10_000
    counts = Counter(dm.draw_answer(rng) for _ in range(trials))

    assert set(counts) == set(dm.ANSWERS)
    expected = trials / len(dm.ANSWERS)
    for answer in dm.ANSWERS:
        # ~5 standard deviations for a binomial with p = 1/6
        assert abs(counts[answer] - expected) < 200, answer


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("state", SAMPLE_STATES)
@pytest.mark.parametrize("key", list(dm.Key))
def test_every_state_key_pair_has_one_successor(state: dm.State, key: dm.Key) -> None:
    successor = dm.handle_key(state, key)
    assert successor is None or isinstance(
        successor, (dm.Idle, dm.Animating, dm.Result, dm.HelpOverlay)
    )
    assert dm.handle_key(state, key) == successor


@pytest.mark.parametrize("state", [dm.Idle(), dm.Result(chosen=dm.Answer.NEVER)])
@pytest.mark.parametrize("key", [dm.Key.ENTER, dm.Key.SPACE])
def test_ask_starts_animation(state: dm.State, key: dm.Key) -> None:
    assert dm.handle_key(state, key) == dm.Animating(progress=0)


@pytest.mark.parametrize("key", [dm.Key.ENTER, dm.Key.SPACE])
def test_ask_during_animation_is_ignored(key: dm.Key) -> None:
    state = dm.Animating(progress=5)
    assert dm.handle_key(state, key) is state


@pytest.mark.parametrize("state", NON_OVERLAY_STATES)
def test_help_toggles_back_to_the_same_state(state: dm.State) -> None:
    overlay = dm.handle_key(state, dm.Key.CTRL_H)
    assert overlay == dm.HelpOverlay(previous=state)
    assert dm.handle_key(overlay, dm.Key.CTRL_H) == state


@pytest.mark.parametrize("key", [dm.Key.ESCAPE, dm.Key.ENTER, dm.Key.SPACE])
def test_help_dismiss_keys_restore_previous(key: dm.Key) -> None:
    previous = dm.Result(chosen=dm.Answer.POSSIBLY)
    assert dm.handle_key(dm.HelpOverlay(previous=previous), key) == previous


@pytest.mark.parametrize("state", SAMPLE_STATES)
@pytest.mark.parametrize("key", [dm.Key.QUIT, dm.Key.CTRL_C])
def test_quit_keys_exit_from_any_state(state: dm.State, key: dm.Key) -> None:
    assert dm.handle_key(state, key) is None


@pytest.mark.parametrize("state", NON_OVERLAY_STATES)
def test_escape_quits_without_overlay(state: dm.State) -> None:
    assert dm.handle_key(state, dm.Key.ESCAPE) is None


def test_animation_lands_after_exactly_n_steps() -> None:
    rng = random.Random(7)
    state = dm.handle_key(dm.Idle(), dm.Key.ENTER)

    almost = _tick_n(state, dm.N_STEPS - 1, rng)
    assert almost == dm.Animating(progress=dm.N_STEPS - 1)

    landed = dm.handle_tick(almost, rng)
    assert isinstance(landed, dm.Result)
    assert landed.chosen in dm.ANSWERS


@pytest.mark.parametrize(
    "state",
    [
        dm.Idle(),
        dm.Result(chosen=dm.Answer.DEFINITELY),
        dm.HelpOverlay(previous=dm.Animating(progress=3)),
    ],
)
def test_ticks_outside_animation_do_nothing(state: dm.State) -> None:
    assert dm.handle_tick(state, random.Random(0)) is state


def test_seeded_result_is_reproducible() -> None:
    start = dm.Animating(progress=0)
    first = _tick_n(start, dm.N_STEPS, random.Random(99))
    second = _tick_n(start, dm.N_STEPS, random.Random(99))
    assert first == second


def test_highlight_cycles_round_robin_while_animating() -> None:
    lit = [dm.highlighted(dm.Animating(progress=p)) for p in range(12)]
    assert lit == list(dm.ANSWERS) * 2


def test_highlight_for_other_states() -> None:
    result = dm.Result(chosen=dm.Answer.ASK_AGAIN)
    assert dm.highlighted(dm.Idle()) is None
    assert dm.highlighted(result) is dm.Answer.ASK_AGAIN
    assert dm.highlighted(dm.HelpOverlay(previous=result)) is dm.Answer.ASK_AGAIN


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def test_idle_frame_shows_every_answer_unlit() -> None:
    lines = dm.render_frame(dm.Idle(), 80)
    text = _plain(lines)

    assert "EXECUTIVE DECISION MAKER" in text
    assert "Radio Shack" in text
    for answer in dm.ANSWERS:
        assert answer.value in text
    assert not any(dm._SGR_LIT in line for line in lines)
    assert "Enter/Space: Ask" in text


def test_result_frame_lights_the_chosen_answer() -> None:
    lines = dm.render_frame(dm.Result(chosen=dm.Answer.NEVER), 80)

    lit = [line for line in lines if dm._SGR_LIT in line]
    assert len(lit) == 1
    assert re.search(re.escape(dm._SGR_LIT) + r"\s*NEVER\s*", lit[0])
    assert "The answer is: NEVER" in _plain(lines)


def test_animating_frame_shows_progress() -> None:
    text = _plain(dm.render_frame(dm.Animating(progress=dm.N_STEPS // 2), 80))
    assert "Consulting the oracle" in text
    assert "[######......]" in text


def test_help_overlay_covers_previous_frame() -> None:
    lines = dm.render_frame(dm.HelpOverlay(previous=dm.Result(dm.Answer.NEVER)), 80)
    text = _plain(lines)

    assert "Help" in text
    assert "Controls:" in text
    assert "Ctrl+C           Quit immediately" in text
    assert "The answer is: NEVER" in text


def test_frame_is_centered_on_width() -> None:
    narrow = dm.render_frame(dm.Idle(), 43)
    wide = dm.render_frame(dm.Idle(), 83)
    assert _ANSI.sub("", narrow[1]).startswith("+- Radio Shack")
    assert _ANSI.sub("", wide[1]).startswith(" " * 20 + "+- Radio Shack")


def test_render_is_pure() -> None:
    state = dm.Animating(progress=4)
    assert dm.render_frame(state, 100) == dm.render_frame(state, 100)


# ---------------------------------------------------------------------------
# Key decoding
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "keys"),
    [
        ("\r", [dm.Key.ENTER]),
        ("\n", [dm.Key.ENTER]),
        (" ", [dm.Key.SPACE]),
        ("\x08", [dm.Key.CTRL_H]),
        ("\x03", [dm.Key.CTRL_C]),
        ("q", [dm.Key.QUIT]),
        ("Q", [dm.Key.QUIT]),
        ("\x1b", [dm.Key.ESCAPE]),
        ("x", []),
        ("\x7f", []),
        ("\x1b[A", []),
        ("\x1bOB", []),
        ("\x1b[15~", []),
        ("\x1b[1;5C\r", [dm.Key.ENTER]),
        ("\r\x08\x1b", [dm.Key.ENTER, dm.Key.CTRL_H, dm.Key.ESCAPE]),
    ],
)
def test_decode_keys(raw: str, keys: list[dm.Key]) -> None:
    assert dm.decode_keys(raw) == keys


def test_decode_keys_tolerates_truncated_sequence() -> None:
    assert dm.decode_keys("\x1b[") == []
