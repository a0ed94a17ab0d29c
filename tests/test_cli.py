import os.path

import pytest
from hashsplit.cli import EXIT_FAILURE, main
from hashsplit.corpus import create_in, open_dir
from hashsplit.sharding import shard_for
from hashsplit.util.testing import TempDir
from loguru import logger

IDS = [f"http://example.com/{i}" for i in range(30)]


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    # main() points the logger at the captured stderr of the test
    logger.remove()
    logger.disable("hashsplit")


def _make_corpus(path, ids, idfield="id"):
    corpus = create_in(path)
    with corpus.writer() as w:
        for i in ids:
            w.add_document(**{idfield: i, "body": "some text"})


def _part_ids(outdir, shardnum, idfield="id"):
    path = os.path.join(outdir, f"part-{shardnum}")
    with open_dir(path).reader() as r:
        return [fields[idfield] for fields in r.all_stored_fields()]


def test_split(capsys):
    with TempDir("cli") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_corpus(inpath, IDS)

        assert main(["--out", outdir, "--num", "3", inpath]) == 0
        assert sorted(os.listdir(outdir)) == ["part-0", "part-1", "part-2"]

        seen = []
        for k in range(3):
            ids = _part_ids(outdir, k)
            assert all(shard_for(i, 3) == k for i in ids)
            seen.extend(ids)
        assert sorted(seen) == sorted(IDS)

    err = capsys.readouterr().err
    assert "Generating shard hashes..." in err
    assert "Done." in err


def test_short_options_and_idfield(capsys):
    with TempDir("clishort") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_corpus(inpath, IDS, idfield="url")

        args = ["-q", "-o", outdir, "-n", "2", "-i", "url", "-p", "2", inpath]
        assert main(args) == 0
        seen = _part_ids(outdir, 0, "url") + _part_ids(outdir, 1, "url")
        assert sorted(seen) == sorted(IDS)

    # Quiet runs only report warnings and errors
    assert capsys.readouterr().err == ""


def test_wrong_idfield(capsys):
    with TempDir("cliwrongid") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_corpus(inpath, IDS, idfield="url")

        assert main(["--out", outdir, "--num", "2", inpath]) == EXIT_FAILURE
        assert not os.path.exists(os.path.join(outdir, "part-0"))

    assert "--id-field" in capsys.readouterr().err


def test_skips_invalid_inputs(capsys):
    with TempDir("cliskip") as dirname:
        good = os.path.join(dirname, "good")
        empty = os.path.join(dirname, "empty")
        missing = os.path.join(dirname, "missing")
        outdir = os.path.join(dirname, "out")
        os.mkdir(empty)
        _make_corpus(good, IDS)

        assert main(["-o", outdir, "-n", "2", missing, empty, good]) == 0
        assert len(_part_ids(outdir, 0)) + len(_part_ids(outdir, 1)) == len(IDS)

    err = capsys.readouterr().err
    assert "Invalid input path - skipping" in err
    assert "Invalid input corpus - skipping" in err


def test_no_valid_inputs(capsys):
    with TempDir("clinone") as dirname:
        outdir = os.path.join(dirname, "out")
        missing = os.path.join(dirname, "missing")
        assert main(["-o", outdir, "-n", "2", missing]) == EXIT_FAILURE
        assert not os.path.exists(outdir)

    assert "No input corpora to process" in capsys.readouterr().err


def test_not_enough_documents(capsys):
    with TempDir("clionedoc") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_corpus(inpath, ["only"])
        assert main(["-o", outdir, "-n", "2", inpath]) == EXIT_FAILURE
        assert not os.path.exists(outdir)

    assert "Not enough documents for splitting" in capsys.readouterr().err


def test_one_shard_rejected():
    with TempDir("clione") as dirname:
        inpath = os.path.join(dirname, "input")
        _make_corpus(inpath, IDS)
        assert main(["-o", os.path.join(dirname, "out"), "-n", "1", inpath]) == (
            EXIT_FAILURE
        )


@pytest.mark.parametrize(
    "args",
    [
        ["-n", "2", "input"],
        ["-o", "out", "input"],
        ["-o", "out", "-n", "2"],
        ["-o", "out", "-n", "two", "input"],
    ],
)
def test_usage_errors(args, capsys):
    with pytest.raises(SystemExit) as e:
        main(args)
    assert e.value.code == 2
    assert "Usage:" in capsys.readouterr().err
