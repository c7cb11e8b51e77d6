import unittest

from drivetrim.shortcuts import (
    ACTION_FRAME_BACK,
    ACTION_FRAME_FORWARD,
    ACTION_PREVIEW,
    ACTION_PROCESS,
    ACTION_RESET_TRIM,
    ACTION_SECOND_BACK,
    ACTION_SECOND_FORWARD,
    ACTION_SET_END,
    ACTION_SET_START,
    ACTION_SHOW_SHORTCUTS,
    ACTION_TOGGLE_PLAY_PAUSE,
    resolve_shortcut_action,
    shortcut_legend,
)


class TestShortcuts(unittest.TestCase):
    def test_plain_actions(self):
        self.assertEqual(resolve_shortcut_action(key=" "), ACTION_TOGGLE_PLAY_PAUSE)
        self.assertEqual(resolve_shortcut_action(key="Space"), ACTION_TOGGLE_PLAY_PAUSE)
        self.assertEqual(resolve_shortcut_action(key="I"), ACTION_SET_START)
        self.assertEqual(resolve_shortcut_action(key="o"), ACTION_SET_END)
        self.assertEqual(resolve_shortcut_action(key="p"), ACTION_PREVIEW)
        self.assertEqual(resolve_shortcut_action(key="Arrow Left"), ACTION_FRAME_BACK)
        self.assertEqual(resolve_shortcut_action(key="Arrow Right"), ACTION_FRAME_FORWARD)

    def test_shift_arrows_step_seconds(self):
        self.assertEqual(resolve_shortcut_action(key="Arrow Left", shift=True), ACTION_SECOND_BACK)
        self.assertEqual(resolve_shortcut_action(key="Arrow Right", shift=True), ACTION_SECOND_FORWARD)

    def test_primary_modifier_actions_ctrl_or_meta(self):
        self.assertEqual(resolve_shortcut_action(key="Enter", ctrl=True), ACTION_PROCESS)
        self.assertEqual(resolve_shortcut_action(key="Enter", meta=True), ACTION_PROCESS)
        self.assertEqual(resolve_shortcut_action(key="r", ctrl=True), ACTION_RESET_TRIM)
        self.assertIsNone(resolve_shortcut_action(key="i", ctrl=True))
        self.assertIsNone(resolve_shortcut_action(key="Enter"))

    def test_help_shortcuts(self):
        self.assertEqual(resolve_shortcut_action(key="F1"), ACTION_SHOW_SHORTCUTS)
        self.assertEqual(resolve_shortcut_action(key="?"), ACTION_SHOW_SHORTCUTS)
        self.assertEqual(resolve_shortcut_action(key="/", shift=True), ACTION_SHOW_SHORTCUTS)
        self.assertEqual(resolve_shortcut_action(key="F1", typing_focus=True), ACTION_SHOW_SHORTCUTS)

    def test_alt_is_ignored(self):
        self.assertIsNone(resolve_shortcut_action(key="i", alt=True))
        self.assertIsNone(resolve_shortcut_action(key="Enter", ctrl=True, alt=True))

    def test_typing_focus_blocks_plain_keys(self):
        self.assertIsNone(resolve_shortcut_action(key="i", typing_focus=True))
        self.assertIsNone(resolve_shortcut_action(key=" ", typing_focus=True))
        self.assertEqual(resolve_shortcut_action(key="Enter", ctrl=True, typing_focus=True), ACTION_PROCESS)

    def test_legend_lists_every_binding(self):
        keys = [k for k, _ in shortcut_legend()]
        self.assertIn("Space", keys)
        self.assertIn("Ctrl/Cmd + Enter", keys)
        self.assertEqual(len(keys), len(set(keys)))


if __name__ == "__main__":
    unittest.main()
