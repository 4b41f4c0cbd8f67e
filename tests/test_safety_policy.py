from unittest import TestCase

from calmspace.services.safety_policy import (
    HIGH_RISK_THRESHOLD,
    SAFETY_MESSAGE,
    apply_safety_policy,
)


class SafetyPolicyTests(TestCase):
    def test_threshold_is_seven(self) -> None:
        self.assertEqual(HIGH_RISK_THRESHOLD, 7)

    def test_below_threshold_returns_draft_unchanged(self) -> None:
        for risk in (-3, 0, 2, 6):
            self.assertEqual(apply_safety_policy(risk, "I hear you."), "I hear you.")

    def test_at_and_above_threshold_appends_suffix(self) -> None:
        for risk in (7, 9, 10, 42):
            result = apply_safety_policy(risk, "I hear you.")
            self.assertTrue(result.startswith("I hear you."))
            self.assertTrue(result.endswith(SAFETY_MESSAGE))
            self.assertEqual(result, "I hear you." + SAFETY_MESSAGE)

    def test_empty_draft_still_gets_suffix(self) -> None:
        self.assertEqual(apply_safety_policy(8, ""), SAFETY_MESSAGE)

    def test_suffix_wording(self) -> None:
        self.assertTrue(SAFETY_MESSAGE.startswith("\n\n"))
        self.assertIn("trusted adult", SAFETY_MESSAGE)
        self.assertIn("mental health professional", SAFETY_MESSAGE)
