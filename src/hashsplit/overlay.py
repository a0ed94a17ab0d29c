# Copyright 2024 Matt Chaput. All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#    1. Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#
#    2. Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY MATT CHAPUT ``AS IS'' AND ANY EXPRESS OR
# IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED WARRANTIES OF
# MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO
# EVENT SHALL MATT CHAPUT OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT
# LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA,
# OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
# NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#
# The views and conclusions contained in the software and documentation are
# those of the authors and should not be interpreted as representing official
# policies, either expressed or implied, of Matt Chaput.


"""Readers that hide documents without touching the corpus underneath.

A :class:`DeletionOverlay` wraps one atomic (segment) reader and keeps two
bit vectors over its ordinals: ``original``, the documents that were already
deleted in the segment when the overlay was built, and ``deleted``, the
documents hidden in the current pass. ``deleted`` always contains
``original``; :meth:`DeletionOverlay.undelete_all` puts it back to exactly
``original``, so documents deleted in the source never become visible.

An :class:`OverlayView` puts an overlay on every segment of a reader and
presents them as one reader, dispatching each ordinal to the overlay of the
segment that owns it. Handing the view to a writer's ``add_reader`` copies
only the documents that are present in the current pass::

    view = OverlayView(corpus.reader())
    view.delete_document(3)
    with create_in("out").writer() as w:
        w.add_reader(view)
    view.undelete_all()
"""

from bisect import bisect_right
from heapq import merge

from cached_property import cached_property

from hashsplit.reading import CorpusReader, MultiPostings, PostingReader
from hashsplit.support.bitvector import BitVector


class FilteredPostings(PostingReader):
    """Wraps a posting reader and skips every posting whose ordinal the
    ``is_deleted`` callable reports as deleted.

    The callable is consulted each time the reader moves, so the postings
    follow the overlay's deletions as they are when the postings are read,
    not a copy taken when the reader was created.
    """

    def __init__(self, child, is_deleted):
        self.child = child
        self.is_deleted = is_deleted
        self._skip_deleted()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.child!r})"

    def _skip_deleted(self):
        child = self.child
        is_deleted = self.is_deleted
        while child.is_active() and is_deleted(child.id()):
            child.next()

    def is_active(self):
        return self.child.is_active()

    def id(self):
        return self.child.id()

    def value(self):
        return self.child.value()

    def next(self):
        self.child.next()
        self._skip_deleted()
        return self.is_active()


class DeletionOverlay(CorpusReader):
    """Presents an atomic reader with extra, revocable deletions.

    The wrapped reader is only ever read. Deletions made through the overlay
    live in the overlay's ``deleted`` bit vector.

    Attributes:
        reader (CorpusReader): The wrapped atomic reader.
        maxdoc (int): The number of ordinals in the wrapped reader.
        original (BitVector): The ordinals deleted in the wrapped reader when
            the overlay was created. Never changed afterwards.
        deleted (BitVector): The ordinals hidden in the current pass.
    """

    def __init__(self, reader, original=None):
        """
        Args:
            reader (CorpusReader): An atomic reader to wrap.
            original (BitVector, optional): A snapshot of the reader's
                deletions to share instead of taking a new one. Used by
                :meth:`fork`.

        Raises:
            ValueError: If the reader is not atomic.
        """
        if not reader.is_atomic():
            raise ValueError(f"{reader!r} is not an atomic reader")

        self.reader = reader
        self.maxdoc = reader.doc_count_all()

        if original is None:
            original = BitVector(self.maxdoc)
            if reader.has_deletions():
                is_deleted = reader.is_deleted
                original.set_from(
                    docnum for docnum in range(self.maxdoc) if is_deleted(docnum)
                )
        elif original.size != self.maxdoc:
            raise ValueError("Deletion snapshot does not match the reader size")

        self.original = original
        self.deleted = original.copy()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.reader!r})"

    def __contains__(self, term):
        return term in self.reader

    def fork(self):
        """Returns a new overlay on the same reader that shares this
        overlay's ``original`` snapshot but has its own ``deleted`` vector,
        reset to the original deletions. The two overlays can then be used
        from different threads.
        """
        return self.__class__(self.reader, original=self.original)

    def close(self):
        # The wrapped reader belongs to whoever opened it
        pass

    def doc_count_all(self):
        return self.maxdoc

    def doc_count(self):
        return self.maxdoc - self.deleted.count()

    def deleted_count(self):
        return self.deleted.count()

    def has_deletions(self):
        return self.maxdoc != self.doc_count()

    def is_deleted(self, docnum):
        return self.deleted[docnum]

    def is_present(self, docnum):
        return not self.deleted[docnum]

    def delete_document(self, docnum):
        """Hides the given ordinal in the current pass. Deleting an ordinal
        that is already deleted does nothing.

        Raises:
            IndexError: If the ordinal is outside the reader.
        """
        self.deleted.set(docnum)

    def undelete_all(self):
        """Unhides every document hidden through this overlay. Documents that
        were deleted in the wrapped reader stay deleted.
        """
        self.deleted = self.original.copy()

    def stored_fields(self, docnum, fieldnames=None):
        return self.reader.stored_fields(docnum, fieldnames)

    def terms(self):
        return self.reader.terms()

    def postings(self, fieldname, text):
        return FilteredPostings(
            self.reader.postings(fieldname, text), self.is_deleted
        )


class OverlayView(CorpusReader):
    """Puts a :class:`DeletionOverlay` on every atomic reader of a (possibly
    composite) reader and presents them as a single reader.

    Each segment keeps its own ordinal space; the view's ordinals are the
    segments' ordinals shifted by the segment's document base. Deleting,
    checking and reading an ordinal is dispatched to the overlay of the
    segment that owns it.

    Args:
        reader (CorpusReader): The reader to wrap. Not modified.
    """

    def __init__(self, reader, _overlays=None):
        self.reader = reader
        if _overlays is None:
            leaves = reader.leaf_readers()
            _overlays = [(DeletionOverlay(r), base) for r, base in leaves]
        self.overlays = [overlay for overlay, _ in _overlays]
        self.doc_offsets = [base for _, base in _overlays]

    def __repr__(self):
        return f"{self.__class__.__name__}({self.reader!r})"

    def __contains__(self, term):
        return any(term in o for o in self.overlays)

    def fork(self):
        """Returns a new view on the same reader in which every segment has
        its own working deletions (see :meth:`DeletionOverlay.fork`).
        """
        return self.__class__(
            self.reader,
            _overlays=[(o.fork(), base) for o, base in self.leaf_readers()],
        )

    def _overlay_and_docnum(self, docnum):
        if docnum < 0 or docnum >= self.maxdoc:
            raise IndexError(f"No document {docnum} in {self!r}")
        # Empty segments share their base with the next segment, and
        # bisect_right picks the last of those
        segmentnum = bisect_right(self.doc_offsets, docnum) - 1
        overlay = self.overlays[segmentnum]
        return overlay, docnum - self.doc_offsets[segmentnum]

    def is_atomic(self):
        return False

    def leaf_readers(self):
        return list(zip(self.overlays, self.doc_offsets))

    def close(self):
        pass

    @cached_property
    def maxdoc(self):
        return sum(o.maxdoc for o in self.overlays)

    def doc_count_all(self):
        return self.maxdoc

    def doc_count(self):
        return sum(o.doc_count() for o in self.overlays)

    def deleted_count(self):
        return sum(o.deleted_count() for o in self.overlays)

    def has_deletions(self):
        return any(o.has_deletions() for o in self.overlays)

    def is_deleted(self, docnum):
        overlay, segdoc = self._overlay_and_docnum(docnum)
        return overlay.is_deleted(segdoc)

    def is_present(self, docnum):
        return not self.is_deleted(docnum)

    def delete_document(self, docnum):
        overlay, segdoc = self._overlay_and_docnum(docnum)
        overlay.delete_document(segdoc)

    def undelete_all(self):
        for overlay in self.overlays:
            overlay.undelete_all()

    def stored_fields(self, docnum, fieldnames=None):
        overlay, segdoc = self._overlay_and_docnum(docnum)
        return overlay.stored_fields(segdoc, fieldnames)

    def terms(self):
        last = None
        for term in merge(*[o.terms() for o in self.overlays]):
            if term != last:
                yield term
                last = term

    def postings(self, fieldname, text):
        term = (fieldname, text)
        readers = []
        offsets = []
        for overlay, base in zip(self.overlays, self.doc_offsets):
            if term in overlay:
                readers.append(overlay.postings(fieldname, text))
                offsets.append(base)
        return MultiPostings(readers, offsets)
