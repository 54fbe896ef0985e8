"""Tests for wizard keyboards."""

from volumebot.config import CallbackPrefix
from volumebot.utils.keyboard_utils import (
    button,
    grid_keyboard,
    platform_keyboard,
    slippage_keyboard,
    stop_keyboard,
)


class TestKeyboards:
    def test_long_labels_are_truncated(self):
        assert len(button("x" * 40, "data").text) == 30

    def test_grid_layout(self):
        keyboard = grid_keyboard([(str(n), str(n)) for n in range(5)], columns=2)
        assert [len(row) for row in keyboard.inline_keyboard] == [2, 2, 1]

    def test_platform_callbacks(self):
        data = [row[0].callback_data for row in platform_keyboard().inline_keyboard]
        assert data == [f"{CallbackPrefix.PLATFORM}pump", f"{CallbackPrefix.PLATFORM}jupiter"]

    def test_slippage_row(self):
        row = slippage_keyboard().inline_keyboard[0]
        assert [b.text for b in row] == ["5%", "10%", "15%"]

    def test_stop_button(self):
        assert stop_keyboard().inline_keyboard[0][0].callback_data == CallbackPrefix.STOP_BOT
