"""
Unit tests for ConfigManager class.
"""
import unittest
from unittest.mock import patch

from sheetquiz.config_manager import ConfigManager
from sheetquiz.models import QuizSettings


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager."""

    def setUp(self):
        """Set up test fixtures."""
        self.config_manager = ConfigManager()

    def test_default_settings(self):
        """Defaults match the standard quiz rules."""
        settings = self.config_manager.get_quiz_settings()

        self.assertIsInstance(settings, QuizSettings)
        self.assertEqual(settings.timer_duration, 30)
        self.assertEqual(settings.auto_advance_delay_ms, 3000)
        self.assertEqual(settings.mixed_question_count, 25)
        self.assertEqual(settings.topic_question_count, 10)
        self.assertEqual(settings.pass_threshold, 18)
        self.assertEqual(settings.max_level, 50)
        self.assertTrue(settings.source_url.startswith("https://"))
        self.assertEqual(settings.mixed_excluded_subjects, [])

    def test_get_quiz_settings_returns_copy(self):
        """Mutating the returned settings does not change the manager."""
        settings = self.config_manager.get_quiz_settings()
        settings.timer_duration = 99
        settings.subject_order.append("Math")

        fresh = self.config_manager.get_quiz_settings()
        self.assertEqual(fresh.timer_duration, 30)
        self.assertEqual(fresh.subject_order, [])

    def test_set_timer_duration_valid(self):
        """Durations within bounds are accepted."""
        for duration in [5, 30, 300]:
            with self.subTest(duration=duration):
                result = self.config_manager.set_timer_duration(duration)
                self.assertTrue(result['success'])
                self.assertEqual(self.config_manager.get_quiz_settings().timer_duration, duration)

    def test_set_timer_duration_invalid(self):
        """Out-of-range and non-integer durations are rejected."""
        for duration in [4, 301, "30", 2.5, True]:
            with self.subTest(duration=duration):
                result = self.config_manager.set_timer_duration(duration)
                self.assertFalse(result['success'])
                self.assertIn('user_message', result)
        self.assertEqual(self.config_manager.get_quiz_settings().timer_duration, 30)

    def test_set_source_url(self):
        """Only http(s) URLs are accepted."""
        self.assertTrue(self.config_manager.set_source_url(" https://example.com/a.csv ")['success'])
        self.assertEqual(self.config_manager.get_quiz_settings().source_url, "https://example.com/a.csv")

        self.assertFalse(self.config_manager.set_source_url("ftp://example.com/a.csv")['success'])
        self.assertFalse(self.config_manager.set_source_url("")['success'])

    def test_set_auto_advance_delay(self):
        """Zero is allowed; negative delays are not."""
        self.assertTrue(self.config_manager.set_auto_advance_delay(0)['success'])
        self.assertFalse(self.config_manager.set_auto_advance_delay(-1)['success'])

    def test_set_topic_question_count(self):
        """None means every question of the topic."""
        self.assertTrue(self.config_manager.set_topic_question_count(None)['success'])
        self.assertIsNone(self.config_manager.get_quiz_settings().topic_question_count)

        self.assertTrue(self.config_manager.set_topic_question_count(5)['success'])
        self.assertFalse(self.config_manager.set_topic_question_count(0)['success'])
        self.assertFalse(self.config_manager.set_topic_question_count(101)['success'])

    def test_pass_threshold_bounded_by_mixed_count(self):
        """The pass threshold cannot exceed the mixed question count."""
        self.assertFalse(self.config_manager.set_pass_threshold(26)['success'])
        self.assertTrue(self.config_manager.set_pass_threshold(25)['success'])
        self.assertFalse(self.config_manager.set_pass_threshold(0)['success'])

    def test_mixed_count_below_threshold_warns(self):
        """Lowering the mixed count below the threshold is accepted with a warning."""
        with self.assertLogs('sheetquiz.config_manager', level='WARNING'):
            result = self.config_manager.set_mixed_question_count(10)
        self.assertTrue(result['success'])
        self.assertFalse(self.config_manager.validate_settings()['valid'])

    def test_name_lists(self):
        """Name lists must contain strings; blanks are dropped."""
        result = self.config_manager.set_mixed_excluded_subjects(["English", " "])
        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_quiz_settings().mixed_excluded_subjects, ["English"])

        self.assertFalse(self.config_manager.set_subject_order("Math")['success'])
        self.assertFalse(self.config_manager.set_subject_order([1, 2])['success'])

    def test_set_topic_order(self):
        """Topic order maps subjects to topic lists."""
        self.assertTrue(self.config_manager.set_topic_order({"Math": ["Algebra"]})['success'])
        self.assertEqual(self.config_manager.get_quiz_settings().topic_order, {"Math": ["Algebra"]})
        self.assertFalse(self.config_manager.set_topic_order(["Math"])['success'])
        self.assertFalse(self.config_manager.set_topic_order({"Math": "Algebra"})['success'])

    def test_apply_config(self):
        """A config file's quiz section is applied in dependency order."""
        errors = self.config_manager.apply_config({
            'quiz': {
                'timer_duration': 20,
                'pass_threshold': 8,
                'mixed_question_count': 10,
                'topic_question_count': None,
                'mixed_excluded_subjects': ["English"],
                'bookmark_file': "./tmp/bookmarks.json",
            }
        })

        self.assertEqual(errors, [])
        settings = self.config_manager.get_quiz_settings()
        self.assertEqual(settings.timer_duration, 20)
        self.assertEqual(settings.mixed_question_count, 10)
        self.assertEqual(settings.pass_threshold, 8)
        self.assertIsNone(settings.topic_question_count)
        self.assertEqual(settings.mixed_excluded_subjects, ["English"])
        self.assertEqual(settings.bookmark_file, "./tmp/bookmarks.json")

    def test_apply_config_lowering_count_and_threshold(self):
        """Lowering both the mixed count and the threshold together is not a warning."""
        with patch.object(self.config_manager.logger, 'warning') as warning:
            errors = self.config_manager.apply_config({'quiz': {'mixed_question_count': 4, 'pass_threshold': 3}})

        self.assertEqual(errors, [])
        warning.assert_not_called()
        settings = self.config_manager.get_quiz_settings()
        self.assertEqual((settings.mixed_question_count, settings.pass_threshold), (4, 3))

    def test_apply_config_count_below_default_threshold(self):
        """A mixed count below the threshold left in place is reported once."""
        errors = self.config_manager.apply_config({'quiz': {'mixed_question_count': 4}})
        self.assertEqual(errors, ["Invalid pass threshold: 18"])

    def test_apply_config_reports_invalid_values(self):
        """Invalid values are reported and the defaults stay in place."""
        errors = self.config_manager.apply_config({'quiz': {'timer_duration': 1, 'max_level': "high"}})

        self.assertEqual(len(errors), 2)
        self.assertTrue(errors[0].startswith("timer_duration"))
        settings = self.config_manager.get_quiz_settings()
        self.assertEqual(settings.timer_duration, 30)
        self.assertEqual(settings.max_level, 50)

    def test_apply_empty_config(self):
        """An empty or missing config keeps every default."""
        self.assertEqual(self.config_manager.apply_config({}), [])
        self.assertEqual(self.config_manager.apply_config(None), [])

    def test_reset_to_defaults(self):
        """Reset restores every default."""
        self.config_manager.set_timer_duration(60)
        self.config_manager.reset_to_defaults()
        self.assertEqual(self.config_manager.get_quiz_settings().timer_duration, 30)

    def test_settings_summary(self):
        """The summary lists the key settings."""
        self.config_manager.set_topic_question_count(None)
        summary = self.config_manager.get_settings_summary()

        self.assertTrue(summary.startswith("Quiz Settings:"))
        self.assertIn("30 seconds", summary)
        self.assertIn("pass mark 18", summary)
        self.assertIn("all available", summary)


if __name__ == '__main__':
    unittest.main()
