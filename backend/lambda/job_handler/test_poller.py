"""job_handler poller tests — empty batches retried, API errors surfaced as PollingFailure."""

from __future__ import annotations

import os
import sys
import unittest
from unittest.mock import MagicMock

from botocore.exceptions import ClientError

sys.path.insert(0, os.path.dirname(__file__))

from codepipeline import Job, PipelineGateway  # noqa: E402
from errors import NoJobsAvailable, PollingFailure  # noqa: E402
from poller import JobPoller  # noqa: E402


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class JobPollerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.pipeline = MagicMock(spec=PipelineGateway)
        self.sleep = MagicMock()
        self.poller = JobPoller(self.pipeline, sleep=self.sleep)
        self.action_type = {"category": "Source", "owner": "Custom", "provider": "P", "version": "1"}

    def test_returns_first_non_empty_batch(self) -> None:
        job = Job(job_id="job-1", nonce="n")
        self.pipeline.poll_for_jobs.side_effect = [[], [job]]

        jobs = self.poller.poll_for_jobs(self.action_type)

        self.assertEqual(jobs, [job])
        self.assertEqual(self.pipeline.poll_for_jobs.call_count, 2)
        self.pipeline.poll_for_jobs.assert_called_with(self.action_type, max_batch_size=1)
        self.assertEqual(self.sleep.call_count, 1)

    def test_empty_batches_exhaust_as_polling_failure(self) -> None:
        self.pipeline.poll_for_jobs.return_value = []

        with self.assertRaises(NoJobsAvailable):
            self.poller.poll_for_jobs(self.action_type)

        self.assertEqual(self.pipeline.poll_for_jobs.call_count, 3)
        self.assertEqual(self.sleep.call_count, 2)

    def test_backoff_uses_one_second_base(self) -> None:
        self.pipeline.poll_for_jobs.return_value = []

        with self.assertRaises(PollingFailure):
            self.poller.poll_for_jobs(self.action_type)

        first, second = (c.args[0] for c in self.sleep.call_args_list)
        self.assertGreaterEqual(first, 1.0)
        self.assertLess(first, 1.3)
        self.assertGreaterEqual(second, 2.0)
        self.assertLess(second, 2.3)

    def test_client_error_is_not_retried(self) -> None:
        self.pipeline.poll_for_jobs.side_effect = _client_error("ThrottlingException", "PollForJobs")

        with self.assertRaises(PollingFailure) as ctx:
            self.poller.poll_for_jobs(self.action_type)

        self.assertNotIsInstance(ctx.exception, NoJobsAvailable)
        self.assertEqual(self.pipeline.poll_for_jobs.call_count, 1)
        self.sleep.assert_not_called()


if __name__ == "__main__":
    unittest.main()
