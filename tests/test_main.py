import pytest

from main import load_config, split_message


def test_load_config(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("discord:\n  token: abc\narchitect:\n  settle_delay: 1\n", encoding="utf-8")

    config = load_config(str(path))

    assert config["discord"]["token"] == "abc"
    assert config["architect"]["settle_delay"] == 1


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yml"))


def test_load_config_requires_token(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("discord:\n  prefix: '!'\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(path))


def test_split_message_prefers_line_breaks():
    text = "a" * 15 + "\n" + "b" * 15
    assert split_message(text, limit=20) == ["a" * 15, "b" * 15]


def test_split_message_hard_cut():
    assert split_message("x" * 45, limit=20) == ["x" * 20, "x" * 20, "x" * 5]
    assert split_message("") == []
