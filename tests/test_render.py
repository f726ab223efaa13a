import unittest

from paddle.contracts.v1 import DeployReport, IssueComment, Stat
from paddle.kernel.render import MAX_CONTENT, MAX_FIELDS, clip, fmt_commit_date, fmt_deploy, fmt_issue_comment, stat_fields


class TestRender(unittest.TestCase):
    def test_commit_date(self) -> None:
        self.assertEqual(fmt_commit_date("2026-10-19T10:00:00Z"), "Mon, Oct 19, 26")
        self.assertEqual(fmt_commit_date("2026-10-19T10:00:00+02:00"), "Mon, Oct 19, 26")
        self.assertEqual(fmt_commit_date("yesterday"), "yesterday")
        self.assertEqual(fmt_commit_date(""), "")

    def test_clip(self) -> None:
        self.assertEqual(clip("abc", 3), "abc")
        self.assertEqual(clip("abcd", 3), "ab…")

    def test_stat_fields_limits(self) -> None:
        stats = [Stat(id=f"s{i}", value="x" * 2000) for i in range(30)]
        stats[0] = Stat(id="empty", description="Empty", value=None)
        fields = stat_fields(stats)
        self.assertEqual(len(fields), MAX_FIELDS)
        self.assertEqual(fields[0], {"name": "Empty", "value": "-", "inline": True})
        self.assertEqual(fields[1]["name"], "s1")
        self.assertEqual(len(fields[1]["value"]), 1024)

    def test_long_messages_are_clipped(self) -> None:
        comment = IssueComment(repo="acme/api", number=1, title="t", username="bob", body="y" * 5000, url="https://x")
        self.assertLessEqual(len(fmt_issue_comment(comment)), MAX_CONTENT)
        self.assertTrue(fmt_issue_comment(comment).endswith("https://x"))
        report = DeployReport(service="api", step="pull", text="z" * 5000, ok=False, code=1)
        text = fmt_deploy(report)
        self.assertLessEqual(len(text), MAX_CONTENT)
        self.assertTrue(text.startswith(":x: pull"))


if __name__ == "__main__":
    unittest.main()
