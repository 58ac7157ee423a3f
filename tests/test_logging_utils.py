"""
Tests for the shared provisioning log.
"""

import logging
import re

from droplet_init.logging_utils import configure_logging

LINE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\S* INFO droplet_init\.cert_bootstrap: retry fired$")


class TestConfigureLogging:
    """Tests for configure_logging()"""

    def test_appends_timestamped_lines(self, tmp_path):
        """A retry run continues the file the initializer started"""
        log = tmp_path / "do-init.log"
        log.write_text("earlier provisioning line\n", encoding="utf-8")

        assert configure_logging(log_path=str(log), also_console=False) == str(log)
        logging.getLogger("droplet_init.cert_bootstrap").info("retry fired")

        lines = log.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "earlier provisioning line"
        assert LINE.match(lines[-1])

    def test_second_call_is_noop(self, tmp_path):
        first = configure_logging(log_path=str(tmp_path / "a.log"), also_console=False)
        before = list(logging.getLogger().handlers)

        assert configure_logging(log_path=str(tmp_path / "b.log"), also_console=False) == first
        assert logging.getLogger().handlers == before
        assert not (tmp_path / "b.log").exists()

    def test_unwritable_directory_falls_back_to_cwd(self, tmp_path, monkeypatch):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.chdir(tmp_path)

        used = configure_logging(log_path=str(blocker / "do-init.log"), also_console=False)

        assert used == str(tmp_path / "do-init.log")
        assert (tmp_path / "do-init.log").exists()
