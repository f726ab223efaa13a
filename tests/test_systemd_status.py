import asyncio
import unittest
from typing import List, Optional

from paddle.contracts.v1 import ExecResult
from paddle.errors import CommandError
from paddle.kernel.systemd import status_excerpt, systemctl_status

STATUS = """\
● api.service - API server
     Loaded: loaded (/etc/systemd/system/api.service; enabled; vendor preset: enabled)
     Active: active (running) since Mon 2026-10-19 10:00:00 UTC; 2s ago
   Main PID: 1234 (node)
      Tasks: 11 (limit: 4915)

Oct 19 10:00:00 box systemd[1]: Started API server.
Oct 19 10:00:01 box node[1234]: listening on 3000
Oct 19 10:00:01 box node[1234]: connected to db
"""


class TestSystemdStatus(unittest.TestCase):
    def test_excerpt_keeps_state_and_journal_tail(self) -> None:
        self.assertEqual(
            status_excerpt(STATUS),
            "Active: active (running)\nStarted API server.\nlistening on 3000\nconnected to db",
        )

    def test_excerpt_tail_limit(self) -> None:
        self.assertEqual(status_excerpt(STATUS, tail=1), "Active: active (running)\nconnected to db")

    def test_inactive_unit_status_is_still_reported(self) -> None:
        async def _run(cmd: str, args: List[str], cwd: Optional[str]) -> ExecResult:
            raise CommandError(3, "", "Active: inactive (dead)\n")

        self.assertEqual(asyncio.run(systemctl_status(_run, "api")), "Active: inactive (dead)\n")

    def test_status_failure_without_report_raises(self) -> None:
        async def _run(cmd: str, args: List[str], cwd: Optional[str]) -> ExecResult:
            raise CommandError(4, "Unit nope.service could not be found.", "")

        with self.assertRaises(CommandError):
            asyncio.run(systemctl_status(_run, "nope"))


if __name__ == "__main__":
    unittest.main()
