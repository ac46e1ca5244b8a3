# backend/hms_core/common/tests/test_boot.py
import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]

# Import order matters for app loading, so these run in a fresh interpreter.
SNIPPET = """
import django
django.setup()
from hms_core.accounts.services import AuthService
from rest_framework.views import APIView
from hms_core.accounts.auth import CookieOrHeaderJWTAuthentication
assert CookieOrHeaderJWTAuthentication in APIView.authentication_classes
print("ok")
"""


def _run(*args):
    env = dict(os.environ, DJANGO_SETTINGS_MODULE="config.settings", DJANGO_ENV="local")
    env.pop("DB_ENGINE", None)
    return subprocess.run(
        [sys.executable, *args], cwd=ROOT, env=env, capture_output=True, text=True, timeout=120
    )


@pytest.mark.parametrize("args", [("manage.py", "check"), ("-c", SNIPPET)], ids=["check", "imports"])
def test_project_boots_in_fresh_interpreter(args):
    result = _run(*args)
    assert result.returncode == 0, result.stderr
