from array import array
from hashlib import md5

import pytest
from hashsplit.filedb.filestore import RamStorage
from hashsplit.progress import ProgressReporter
from hashsplit.sharding import (
    MAX_SHARDS,
    MissingIdFieldError,
    ShardAssigner,
    SplitConfigError,
    SplitPreconditionError,
    shard_for,
)


def _hexshard(identifier, numshards):
    return int(md5(identifier.encode("utf-8")).hexdigest(), 16) % numshards


def test_known_digest():
    # md5("a") = 0cc175b9c0f1b6a831c399e269772661
    assert shard_for("a", 2) == 1
    assert shard_for("a", 16) == 1
    assert shard_for("a", 256) == 0x61


def test_matches_hex_integer():
    for identifier in ["a", "b", "c", "d", "http://example.com/", "été"]:
        for numshards in (2, 3, 7, 10, 1000):
            assert shard_for(identifier, numshards) == _hexshard(
                identifier, numshards
            )


def test_deterministic():
    ids = [f"doc{i}" for i in range(200)]
    first = [shard_for(i, 5) for i in ids]
    second = [shard_for(i, 5) for i in ids]
    assert first == second
    assert all(0 <= s < 5 for s in first)
    # Two hundred ids should land in every one of five shards
    assert set(first) == {0, 1, 2, 3, 4}


def test_bad_shard_count():
    with pytest.raises(SplitPreconditionError):
        ShardAssigner(1)
    with pytest.raises(SplitPreconditionError):
        ShardAssigner(0)
    with pytest.raises(SplitPreconditionError):
        ShardAssigner(MAX_SHARDS + 1)
    assert ShardAssigner(MAX_SHARDS).numshards == MAX_SHARDS


def test_empty_idfield():
    with pytest.raises(SplitConfigError):
        ShardAssigner(2, idfield="")


def test_assign_missing():
    sa = ShardAssigner(3, idfield="url")
    with pytest.raises(MissingIdFieldError) as e:
        sa.assign(None, 4)
    assert e.value.fieldname == "url"
    assert e.value.docnum == 4
    assert "--id-field" in str(e.value)

    with pytest.raises(MissingIdFieldError):
        sa.assign("", 0)


def test_assign_non_string():
    sa = ShardAssigner(3)
    assert sa.assign(12) == shard_for("12", 3)


def _corpus(docs):
    corpus = RamStorage().create_corpus()
    with corpus.writer() as w:
        for fields in docs:
            w.add_document(**fields)
    return corpus


def test_assign_reader():
    ids = ["a", "b", "c", "d", "e"]
    corpus = _corpus([{"id": i, "title": f"title {i}"} for i in ids])
    corpus.delete_document(2)

    sa = ShardAssigner(3)
    with corpus.reader() as r:
        table = sa.assign_reader(r)

    assert isinstance(table, array)
    assert table.typecode == "H"
    assert len(table) == 5
    # Deleted ordinals are hashed too
    for docnum, identifier in enumerate(ids):
        assert table[docnum] == shard_for(identifier, 3)


def test_assign_reader_missing_id():
    corpus = _corpus([{"id": "a"}, {"title": "no id"}, {"id": "c"}])
    sa = ShardAssigner(2)
    with corpus.reader() as r:
        with pytest.raises(MissingIdFieldError) as e:
            sa.assign_reader(r)
    assert e.value.docnum == 1


def test_assign_reader_progress():
    class Recorder(ProgressReporter):
        def __init__(self):
            self.events = []

        def start(self, phase):
            self.events.append(("start", phase))

        def update(self, phase, percent):
            self.events.append(("update", percent))

        def finish(self, phase):
            self.events.append(("finish", phase))

    corpus = _corpus([{"id": str(i)} for i in range(4)])
    rec = Recorder()
    with corpus.reader() as r:
        ShardAssigner(2).assign_reader(r, rec)

    assert rec.events[0] == ("start", "hashing")
    assert rec.events[-1] == ("finish", "hashing")
    percents = [p for kind, p in rec.events if kind == "update"]
    assert percents == [0, 25, 50, 75]
