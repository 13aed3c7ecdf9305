from pathlib import Path

import pytest

pytest.importorskip("tkinter")

import main  # noqa: E402


class FakeRoot:
    def __init__(self):
        self.looped = False

    def mainloop(self):
        self.looped = True


@pytest.fixture
def window(monkeypatch):
    opened = {}

    def fake_gui(root, cases_dir=None):
        opened["root"] = root
        opened["cases_dir"] = cases_dir

    monkeypatch.setattr(main.tk, "Tk", FakeRoot)
    monkeypatch.setattr(main, "AgentDemoGUI", fake_gui)
    return opened


def test_help_names_the_demo_window(capsys, window):
    assert main.main(["--help"]) == 0
    assert "Billing Agent demo window" in capsys.readouterr().out
    assert window == {}


@pytest.mark.parametrize("argv", [["--cases"], ["extra"], ["--cases", "a", "b"]])
def test_usage_errors(argv, capsys, window):
    assert main.main(argv) == 2
    assert "Usage" in capsys.readouterr().out
    assert window == {}


def test_opens_the_window_with_a_cases_directory(tmp_path, window):
    assert main.main(["--cases", str(tmp_path)]) == 0
    assert window["cases_dir"] == Path(tmp_path)
    assert window["root"].looped is True


def test_missing_display_is_reported(monkeypatch, capsys):
    def no_display():
        raise main.tk.TclError("no display name and no $DISPLAY environment variable")

    monkeypatch.setattr(main.tk, "Tk", no_display)
    assert main.main([]) == 1
    assert "Cannot open the agent demo window" in capsys.readouterr().out
