import pytest
from hashsplit.filedb.filestore import RamStorage
from hashsplit.overlay import DeletionOverlay, FilteredPostings, OverlayView
from hashsplit.reading import ListPostings, MultiReader


def _corpus(*segments):
    # Each argument is a list of ids written as its own segment
    corpus = RamStorage().create_corpus()
    for ids in segments:
        with corpus.writer() as w:
            for i in ids:
                w.add_document(id=i, title=f"alfa {i}")
    return corpus


def _ids(reader):
    return [fields["id"] for fields in reader.all_stored_fields()]


def test_filtered_postings():
    deleted = {2, 5}
    items = [(n, (0,)) for n in range(7)]
    fp = FilteredPostings(ListPostings(items), deleted.__contains__)
    assert list(fp.all_ids()) == [0, 1, 3, 4, 6]


def test_filtered_postings_all_deleted():
    fp = FilteredPostings(ListPostings([(0, (0,)), (1, (0,))]), lambda d: True)
    assert not fp.is_active()
    assert list(fp.all_items()) == []


def test_overlay_requires_atomic():
    corpus = _corpus(["a", "b"], ["c"])
    with corpus.reader() as r:
        assert isinstance(r, MultiReader)
        with pytest.raises(ValueError):
            DeletionOverlay(r)


def test_delete_and_reset():
    corpus = _corpus(["a", "b", "c", "d"])
    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        assert ov.doc_count() == 4
        assert not ov.has_deletions()

        ov.delete_document(1)
        ov.delete_document(3)
        assert ov.doc_count() == 2
        assert ov.deleted_count() == 2
        assert ov.has_deletions()
        assert ov.is_deleted(1)
        assert ov.is_present(0)
        assert _ids(ov) == ["a", "c"]

        # The wrapped reader doesn't see the overlay's deletions
        assert r.doc_count() == 4
        assert not r.is_deleted(1)

        ov.undelete_all()
        assert ov.doc_count() == 4
        assert _ids(ov) == ["a", "b", "c", "d"]


def test_delete_is_idempotent():
    corpus = _corpus(["a", "b", "c"])
    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        ov.delete_document(1)
        ov.delete_document(1)
        assert ov.doc_count() == 2
        assert ov.deleted_count() == 1


def test_delete_out_of_range():
    corpus = _corpus(["a", "b"])
    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        with pytest.raises(IndexError):
            ov.delete_document(2)


def test_original_deletions_survive_reset():
    corpus = _corpus(["a", "b", "c", "d"])
    corpus.delete_document(2)

    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        assert list(ov.original) == [2]
        assert ov.doc_count() == 3
        assert ov.is_deleted(2)

        # Deleting an already deleted document changes nothing
        ov.delete_document(2)
        assert ov.doc_count() == 3

        ov.delete_document(0)
        assert ov.doc_count() == 2
        ov.undelete_all()
        assert ov.doc_count() == 3
        assert ov.is_deleted(2)
        assert _ids(ov) == ["a", "b", "d"]


def test_postings_follow_deletions():
    corpus = _corpus(["a", "b", "c", "d"])
    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        assert list(ov.postings("title", "alfa").all_ids()) == [0, 1, 2, 3]

        ov.delete_document(1)
        assert list(ov.postings("title", "alfa").all_ids()) == [0, 2, 3]
        assert list(ov.postings("title", "b").all_ids()) == []
        assert ov.doc_frequency("title", "alfa") == 3

        ov.undelete_all()
        assert list(ov.postings("title", "b").all_ids()) == [1]


def test_fork_is_independent():
    corpus = _corpus(["a", "b", "c"])
    corpus.delete_document(0)

    with corpus.reader() as r:
        ov = DeletionOverlay(r)
        other = ov.fork()
        assert other.original is ov.original

        other.delete_document(1)
        assert other.doc_count() == 1
        assert ov.doc_count() == 2

        ov.delete_document(2)
        assert other.is_present(2)
        assert other.is_deleted(0)


def test_view_dispatch():
    corpus = _corpus(["a", "b", "c"], ["d", "e"], ["f"])
    with corpus.reader() as r:
        view = OverlayView(r)
        assert len(view.overlays) == 3
        assert view.doc_offsets == [0, 3, 5]
        assert view.doc_count_all() == 6
        assert not view.is_atomic()

        view.delete_document(0)
        view.delete_document(4)
        view.delete_document(5)
        assert view.doc_count() == 3
        assert view.overlays[0].doc_count() == 2
        assert view.overlays[1].doc_count() == 1
        assert view.overlays[2].doc_count() == 0
        assert _ids(view) == ["b", "c", "d"]
        assert view.stored_fields(3) == {"id": "d", "title": "alfa d"}

        assert list(view.postings("title", "alfa").all_ids()) == [1, 2, 3]
        assert list(view.postings("title", "e").all_ids()) == []

        view.undelete_all()
        assert _ids(view) == ["a", "b", "c", "d", "e", "f"]

        with pytest.raises(IndexError):
            view.is_deleted(6)


def test_view_preserves_segment_deletions():
    corpus = _corpus(["a", "b"], ["c", "d"])
    corpus.delete_document(3)

    with corpus.reader() as r:
        view = OverlayView(r)
        assert view.doc_count() == 3
        view.delete_document(0)
        view.undelete_all()
        assert view.is_deleted(3)
        assert _ids(view) == ["a", "b", "c"]


def test_view_fork():
    corpus = _corpus(["a", "b"], ["c", "d"])
    with corpus.reader() as r:
        view = OverlayView(r)
        forked = view.fork()
        forked.delete_document(2)
        assert forked.doc_count() == 3
        assert view.doc_count() == 4
        assert forked.doc_offsets == view.doc_offsets


def test_view_terms():
    corpus = _corpus(["a", "b"], ["b", "c"])
    with corpus.reader() as r:
        view = OverlayView(r)
        terms = list(view.terms())
        assert terms == sorted(set(terms))
        assert ("title", "alfa") in terms
        assert ("id", "c") in terms
        assert ("title", "c") in view
        assert ("title", "zulu") not in view
