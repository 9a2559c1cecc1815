import unittest

from src.common.errors import ApplyError, ClusterCommandError, RetryExhausted
from src.orchestrator.models import RetryPolicy
from src.orchestrator.retry import RetryController, RetryStatus


class RetryControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sleeps = []
        self.controller = RetryController(sleep=self.sleeps.append)

    def test_always_failing_operation_is_exhausted_after_max_attempts(self) -> None:
        calls = []

        def operation() -> str:
            calls.append(1)
            raise ApplyError(None, "admission webhook unavailable")

        outcome = self.controller.retry(operation, RetryPolicy(max_attempts=3, delay_seconds=10))
        self.assertEqual(outcome.status, RetryStatus.EXHAUSTED)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(len(calls), 3)
        self.assertEqual(len(outcome.errors), 3)
        self.assertEqual(self.sleeps, [10, 10])
        with self.assertRaises(RetryExhausted) as ctx:
            outcome.raise_if_exhausted("apply ingress")
        self.assertEqual(ctx.exception.attempts, 3)

    def test_success_on_third_attempt_after_two_failures(self) -> None:
        results = iter([ApplyError(None, "first"), ApplyError(None, "second"), "configured"])

        def operation() -> str:
            item = next(results)
            if isinstance(item, Exception):
                raise item
            return item

        outcome = self.controller.retry(operation, RetryPolicy(max_attempts=3, delay_seconds=10))
        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(outcome.value, "configured")
        self.assertEqual(len(outcome.errors), 2)
        self.assertEqual(outcome.raise_if_exhausted("apply"), "configured")

    def test_recovery_runs_before_each_delay(self) -> None:
        events = []

        def operation() -> None:
            events.append("attempt")
            raise ApplyError(None, "rejected")

        controller = RetryController(sleep=lambda seconds: events.append("sleep"))
        policy = RetryPolicy(max_attempts=3, delay_seconds=5, recovery_action=lambda: events.append("recover"))
        controller.retry(operation, policy)
        self.assertEqual(
            events, ["attempt", "recover", "sleep", "attempt", "recover", "sleep", "attempt"]
        )

    def test_failing_recovery_is_recorded_and_loop_continues(self) -> None:
        attempts = []

        def operation() -> str:
            attempts.append(1)
            if len(attempts) < 2:
                raise ApplyError(None, "rejected")
            return "ok"

        def recovery() -> None:
            raise ClusterCommandError("controller namespace not found")

        outcome = self.controller.retry(operation, RetryPolicy(3, 1, recovery))
        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.attempts, 2)
        self.assertIsInstance(outcome.errors[-1], ClusterCommandError)

    def test_attempt_callback_sees_every_failure(self) -> None:
        seen = []

        def operation() -> None:
            raise ApplyError(None, "rejected")

        self.controller.retry(
            operation,
            RetryPolicy(max_attempts=2, delay_seconds=0),
            on_attempt_failed=lambda attempt, exc: seen.append(attempt),
        )
        self.assertEqual(seen, [1, 2])
        self.assertEqual(self.sleeps, [])

    def test_failing_attempt_callback_is_recorded_and_loop_continues(self) -> None:
        results = iter([ApplyError(None, "rejected"), "configured"])

        def operation() -> str:
            item = next(results)
            if isinstance(item, Exception):
                raise item
            return item

        def on_attempt_failed(attempt, exc) -> None:
            raise ClusterCommandError("events endpoint unavailable")

        outcome = self.controller.retry(
            operation, RetryPolicy(max_attempts=3, delay_seconds=0), on_attempt_failed=on_attempt_failed
        )
        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.attempts, 2)
        self.assertEqual(len(outcome.errors), 2)
        self.assertIsInstance(outcome.errors[-1], ClusterCommandError)

    def test_unexpected_errors_propagate(self) -> None:
        def operation() -> None:
            raise KeyError("bug")

        with self.assertRaises(KeyError):
            self.controller.retry(operation, RetryPolicy())

    def test_zero_attempts_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.controller.retry(lambda: None, RetryPolicy(max_attempts=0))


if __name__ == "__main__":
    unittest.main()
