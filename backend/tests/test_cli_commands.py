from __future__ import annotations

import unittest

from kyve.extensions import db
from kyve.models import User
from kyve.utils.jwt_utils import decode_session_token

from app_case import KyveAppTestCase


class CliCommandsTestCase(KyveAppTestCase):
    def _run(self, *args):
        return self.app.test_cli_runner().invoke(args=list(args))

    def _line(self, output: str, prefix: str) -> str:
        for line in output.splitlines():
            if line.startswith(prefix):
                return line[len(prefix):].strip()
        self.fail(f"{prefix!r} not in output: {output!r}")

    def test_create_user_is_repeatable(self):
        first = self._run("create-user", "--email", "Ops@Kyve.test", "--name", "Ops")
        self.assertEqual(first.exit_code, 0, first.output)
        self.assertIn("user_created", first.output)
        api_key = self._line(first.output, "api_key=")
        token = self._line(first.output, "session_token=")

        second = self._run("create-user", "--email", "ops@kyve.test")
        self.assertEqual(second.exit_code, 0, second.output)
        self.assertIn("user_exists", second.output)
        self.assertEqual(self._line(second.output, "api_key="), api_key)

        with self.app.app_context():
            user = User.query.filter_by(email="ops@kyve.test").one()
            self.assertEqual(user.name, "Ops")
            self.assertEqual(int(decode_session_token(token)["sub"]), int(user.id))

    def test_rotate_api_key(self):
        created = self._run("create-user", "--email", "rotate-cli@kyve.test")
        old_key = self._line(created.output, "api_key=")
        rotated = self._run("rotate-api-key", "--email", "rotate-cli@kyve.test")
        self.assertEqual(rotated.exit_code, 0, rotated.output)
        with self.app.app_context():
            user = User.query.filter_by(email="rotate-cli@kyve.test").one()
            self.assertNotEqual(user.api_key, old_key)
            db.session.remove()

        missing = self._run("rotate-api-key", "--email", "ghost@kyve.test")
        self.assertNotEqual(missing.exit_code, 0)


if __name__ == "__main__":
    unittest.main()
