import os
import time

from conftest import addr
from config import ZERO_ADDRESS
from denylist import ALWAYS_IGNORED, Denylist, parse_denylist


class TestParse:
    def test_blank_lines_ignored_and_case_folded(self):
        text = "\n0xABCDEF0000000000000000000000000000000001\n\n  0xabcdef0000000000000000000000000000000002  \n"
        parsed = parse_denylist(text)
        assert parsed == {
            "0xabcdef0000000000000000000000000000000001",
            "0xabcdef0000000000000000000000000000000002",
        }


class TestDenylist:
    def test_missing_file_yields_empty_set(self, tmp_path):
        dl = Denylist()
        assert dl.reload(str(tmp_path / "missing.txt")) is False
        assert not dl.is_denied(addr(1))
        assert dl.size() == len(ALWAYS_IGNORED)

    def test_always_ignored_addresses(self):
        dl = Denylist()
        assert dl.is_denied(ZERO_ADDRESS)
        assert dl.is_denied("0x000000000000000000000000000000000000dEaD")

    def test_loads_file_case_insensitive(self, tmp_path):
        path = tmp_path / "denylist.txt"
        path.write_text(addr(0xAB).upper().replace("0X", "0x") + "\n")
        dl = Denylist(str(path))
        assert dl.is_denied(addr(0xAB))
        assert not dl.is_denied(addr(0xAC))

    def test_filter_keeps_delivery_order(self):
        dl = Denylist(extra=[addr(2)])
        assert dl.filter([addr(3), addr(2), addr(1)]) == [addr(3), addr(1)]

    def test_add_and_remove(self):
        dl = Denylist()
        dl.add(addr(5))
        assert dl.is_denied(addr(5))
        dl.remove(addr(5))
        assert not dl.is_denied(addr(5))

    def test_reload_replaces_whole_set(self, tmp_path):
        path = tmp_path / "denylist.txt"
        path.write_text(addr(1) + "\n")
        dl = Denylist(str(path))
        path.write_text(addr(2) + "\n")
        assert dl.reload() is True
        assert not dl.is_denied(addr(1))
        assert dl.is_denied(addr(2))

    def test_extras_survive_file_load_and_reload(self, tmp_path):
        path = tmp_path / "denylist.txt"
        path.write_text(addr(1) + "\n")
        dl = Denylist(str(path), extra=[addr(2)])
        assert dl.is_denied(addr(1))
        assert dl.is_denied(addr(2))
        assert dl.size() == 2 + len(ALWAYS_IGNORED)

        path.write_text(addr(3) + "\n")
        dl.reload()
        assert dl.is_denied(addr(2))
        assert dl.is_denied(addr(3))
        assert not dl.is_denied(addr(1))

    def test_extras_survive_missing_file(self, tmp_path):
        dl = Denylist(str(tmp_path / "missing.txt"), extra=[addr(2)])
        assert dl.is_denied(addr(2))

    def test_watch_picks_up_changes(self, tmp_path):
        path = tmp_path / "denylist.txt"
        path.write_text(addr(1) + "\n")
        dl = Denylist(str(path))
        dl.watch(interval=0.02)
        try:
            path.write_text(addr(9) + "\n")
            future = time.time() + 10
            os.utime(str(path), (future, future))
            deadline = time.time() + 3
            while time.time() < deadline and not dl.is_denied(addr(9)):
                time.sleep(0.02)
            assert dl.is_denied(addr(9))
            assert not dl.is_denied(addr(1))
        finally:
            dl.stop_watching()
