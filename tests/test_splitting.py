import os.path
from hashlib import md5

import pytest
from hashsplit.corpus import CorpusError, create_in, open_dir
from hashsplit.filedb.filereading import SegmentReader
from hashsplit.filedb.filestore import RamStorage
from hashsplit.progress import ProgressReporter
from hashsplit.sharding import (
    MissingIdFieldError,
    SplitConfigError,
    SplitPreconditionError,
    shard_for,
)
from hashsplit.splitting import HashSplitter, SplitState, part_name, split_corpus
from hashsplit.util.testing import TempDir

IDS = [f"doc{i:03d}" for i in range(60)]


def _fill(corpus, ids, idfield="id", segment_size=None):
    segment_size = segment_size or len(ids) or 1
    for start in range(0, len(ids), segment_size):
        with corpus.writer() as w:
            for i in ids[start : start + segment_size]:
                w.add_document(**{idfield: i, "body": f"common {i}"})
    return corpus


def _ram_corpus(ids, **kwargs):
    return _fill(RamStorage().create_corpus(), ids, **kwargs)


def _ids_in(corpus):
    with corpus.reader() as r:
        return [fields["id"] for fields in r.all_stored_fields()]


def _dir_ids(path):
    return _ids_in(open_dir(path))


def _expected(ids, numshards):
    parts = [[] for _ in range(numshards)]
    for i in ids:
        shard = int(md5(i.encode("utf-8")).hexdigest(), 16) % numshards
        parts[shard].append(i)
    return parts


def test_part_name():
    assert part_name(0) == "part-0"
    assert part_name(11) == "part-11"


def test_four_documents():
    ids = ["a", "b", "c", "d"]
    source = _ram_corpus(ids)
    outputs = [RamStorage(), RamStorage()]

    with source.reader() as r:
        counts = HashSplitter().split(r, outputs)

    parts = [_ids_in(st.open_corpus()) for st in outputs]
    assert parts == _expected(ids, 2)
    assert sorted(parts[0] + parts[1]) == ids
    assert not set(parts[0]) & set(parts[1])
    assert counts == [len(p) for p in parts]


def test_partition():
    source = _ram_corpus(IDS, segment_size=17)
    outputs = [RamStorage() for _ in range(5)]

    splitter = HashSplitter()
    with source.reader() as r:
        counts = splitter.split(r, outputs)
    assert splitter.state is SplitState.DONE
    assert splitter.numshards == 5

    parts = [_ids_in(st.open_corpus()) for st in outputs]
    assert parts == _expected(IDS, 5)
    assert sum(counts) == len(IDS)
    for shardnum, part in enumerate(parts):
        assert all(shard_for(i, 5) == shardnum for i in part)

    # The input is untouched
    assert source.doc_count() == len(IDS)
    assert not source.has_deletions()


def test_output_postings():
    ids = ["a", "b", "c", "d", "e", "f"]
    source = _ram_corpus(ids)
    outputs = [RamStorage(), RamStorage()]
    with source.reader() as r:
        HashSplitter().split(r, outputs)

    for st, expected in zip(outputs, _expected(ids, 2)):
        with st.open_corpus().reader() as r:
            if expected:
                assert r.doc_frequency("body", "common") == len(expected)
            for docnum, i in enumerate(expected):
                assert list(r.postings("id", i).all_items()) == [(docnum, (0,))]
                assert list(r.postings("body", i).all_items()) == [(docnum, (1,))]


def test_source_deletions_not_copied():
    source = _ram_corpus(IDS, segment_size=25)
    deleted = [3, 30, 59]
    for docnum in deleted:
        source.delete_document(docnum)
    live = [i for n, i in enumerate(IDS) if n not in deleted]

    outputs = [RamStorage() for _ in range(3)]
    with source.reader() as r:
        counts = HashSplitter().split(r, outputs)

    parts = [_ids_in(st.open_corpus()) for st in outputs]
    assert parts == _expected(live, 3)
    assert sum(counts) == len(live)
    assert source.doc_count() == len(live)


def test_resplit_is_stable():
    source = _ram_corpus(IDS)
    first = [RamStorage() for _ in range(4)]
    second = [RamStorage() for _ in range(4)]
    with source.reader() as r:
        HashSplitter().split(r, first)
    with source.reader() as r:
        HashSplitter().split(r, second)

    assert [_ids_in(st.open_corpus()) for st in first] == [
        _ids_in(st.open_corpus()) for st in second
    ]


def test_concurrent_passes():
    source = _ram_corpus(IDS, segment_size=13)
    sequential = [RamStorage() for _ in range(4)]
    concurrent = [RamStorage() for _ in range(4)]

    with source.reader() as r:
        c1 = HashSplitter().split(r, sequential)
    with source.reader() as r:
        c2 = HashSplitter(procs=3).split(r, concurrent)

    assert c1 == c2
    assert [_ids_in(st.open_corpus()) for st in sequential] == [
        _ids_in(st.open_corpus()) for st in concurrent
    ]


def test_custom_idfield():
    source = _fill(RamStorage().create_corpus(), ["x", "y", "z"], idfield="url")
    outputs = [RamStorage(), RamStorage()]
    with source.reader() as r:
        counts = HashSplitter(idfield="url").split(r, outputs)
    assert sum(counts) == 3


def test_one_output_rejected():
    source = _ram_corpus(["a", "b"])
    splitter = HashSplitter()
    with source.reader() as r:
        with pytest.raises(SplitPreconditionError):
            splitter.split(r, [RamStorage()])
    assert splitter.state is SplitState.VALIDATING


def test_too_few_documents():
    source = _ram_corpus(["a"])
    output = RamStorage()
    with source.reader() as r:
        with pytest.raises(SplitPreconditionError):
            HashSplitter().split(r, [output, RamStorage()])
    assert output.list() == []


def test_bad_procs():
    with pytest.raises(SplitConfigError):
        HashSplitter(procs=0)


def test_empty_idfield():
    with pytest.raises(SplitConfigError):
        HashSplitter(idfield="")


def test_missing_id_aborts():
    corpus = RamStorage().create_corpus()
    with corpus.writer() as w:
        w.add_document(id="a")
        w.add_document(title="no identifier")
        w.add_document(id="c")

    with TempDir("missingid") as dirname:
        outputs = [os.path.join(dirname, part_name(k)) for k in range(2)]
        splitter = HashSplitter()
        with corpus.reader() as r:
            with pytest.raises(MissingIdFieldError) as e:
                splitter.split(r, outputs)
        assert e.value.docnum == 1
        assert splitter.state is SplitState.HASHING
        assert not any(os.path.exists(path) for path in outputs)


def test_progress_phases():
    class Recorder(ProgressReporter):
        def __init__(self):
            self.phases = []

        def start(self, phase):
            self.phases.append(phase)

    source = _ram_corpus(["a", "b", "c", "d"])
    rec = Recorder()
    with source.reader() as r:
        HashSplitter(progress=rec).split(r, [RamStorage(), RamStorage()])
    assert rec.phases == ["hashing", "shard 1 of 2", "shard 2 of 2"]


def _make_dir_corpus(path, ids, **kwargs):
    return _fill(create_in(path), ids, **kwargs)


def test_split_corpus():
    with TempDir("splitcorpus") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_dir_corpus(inpath, IDS, segment_size=20)

        counts = split_corpus([inpath], outdir, 3)
        assert sorted(os.listdir(outdir)) == ["part-0", "part-1", "part-2"]
        parts = [_dir_ids(os.path.join(outdir, part_name(k))) for k in range(3)]
        assert parts == _expected(IDS, 3)
        assert counts == [len(p) for p in parts]

        # The input corpus is unchanged
        assert _dir_ids(inpath) == IDS


def test_split_corpus_several_inputs():
    with TempDir("multiinput") as dirname:
        in1 = os.path.join(dirname, "in1")
        in2 = os.path.join(dirname, "in2")
        outdir = os.path.join(dirname, "out")
        _make_dir_corpus(in1, IDS[:25])
        _make_dir_corpus(in2, IDS[25:], segment_size=10)

        split_corpus([in1, in2], outdir, 2)
        parts = [_dir_ids(os.path.join(outdir, part_name(k))) for k in range(2)]
        assert parts == _expected(IDS, 2)


def test_split_corpus_skips_invalid_inputs():
    with TempDir("skipinvalid") as dirname:
        good = os.path.join(dirname, "good")
        empty = os.path.join(dirname, "empty")
        os.mkdir(empty)
        outdir = os.path.join(dirname, "out")
        _make_dir_corpus(good, IDS)

        counts = split_corpus(
            [os.path.join(dirname, "nothere"), empty, good], outdir, 2
        )
        assert sum(counts) == len(IDS)


def test_split_corpus_no_inputs():
    with TempDir("noinputs") as dirname:
        outdir = os.path.join(dirname, "out")
        with pytest.raises(SplitConfigError):
            split_corpus([os.path.join(dirname, "nothere")], outdir, 2)
        assert not os.path.exists(outdir)


def test_split_corpus_bad_numshards():
    with TempDir("badnum") as dirname:
        inpath = os.path.join(dirname, "input")
        _make_dir_corpus(inpath, IDS)
        outdir = os.path.join(dirname, "out")
        with pytest.raises(SplitConfigError):
            split_corpus([inpath], outdir, 1)
        assert not os.path.exists(outdir)


def test_split_corpus_one_document():
    with TempDir("onedoc") as dirname:
        inpath = os.path.join(dirname, "input")
        _make_dir_corpus(inpath, ["only"])
        outdir = os.path.join(dirname, "out")
        with pytest.raises(SplitPreconditionError):
            split_corpus([inpath], outdir, 2)
        assert not os.path.exists(outdir)


def test_split_corpus_outdir_is_file():
    with TempDir("outfile") as dirname:
        inpath = os.path.join(dirname, "input")
        _make_dir_corpus(inpath, IDS)
        outdir = os.path.join(dirname, "out")
        with open(outdir, "w") as f:
            f.write("x")
        with pytest.raises(SplitConfigError):
            split_corpus([inpath], outdir, 2)


def test_split_corpus_replaces_old_parts():
    with TempDir("replace") as dirname:
        inpath = os.path.join(dirname, "input")
        outdir = os.path.join(dirname, "out")
        _make_dir_corpus(inpath, IDS)

        first = split_corpus([inpath], outdir, 2)
        second = split_corpus([inpath], outdir, 2)
        assert first == second
        parts = [_dir_ids(os.path.join(outdir, part_name(k))) for k in range(2)]
        assert parts == _expected(IDS, 2)


@pytest.mark.parametrize(
    "kwargs", [{"procs": 0}, {"procs": -2}, {"idfield": ""}, {"idfield": None}]
)
def test_split_corpus_bad_settings(kwargs):
    with TempDir("badsettings") as dirname:
        inpath = os.path.join(dirname, "input")
        _make_dir_corpus(inpath, IDS)
        outdir = os.path.join(dirname, "out")
        with pytest.raises(SplitConfigError):
            split_corpus([inpath], outdir, 2, **kwargs)
        assert not os.path.exists(outdir)


def test_split_corpus_closes_readers_on_bad_input(monkeypatch):
    closed = []
    close = SegmentReader.close

    def recording_close(self):
        closed.append(self)
        close(self)

    monkeypatch.setattr(SegmentReader, "close", recording_close)

    with TempDir("badinput") as dirname:
        good = os.path.join(dirname, "good")
        _make_dir_corpus(good, IDS)

        # A table of contents that can't be read
        broken = os.path.join(dirname, "broken")
        os.mkdir(broken)
        with open(os.path.join(broken, "_MAIN_1.toc"), "wb") as f:
            f.write(b"\x00" * 16)

        outdir = os.path.join(dirname, "out")
        with pytest.raises(CorpusError):
            split_corpus([good, broken], outdir, 2)
        assert not os.path.exists(outdir)

    assert len(closed) == 1
    assert closed[0].is_closed
