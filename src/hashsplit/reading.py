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


"""This module contains classes that allow reading from a corpus."""

from bisect import bisect_right
from heapq import merge

from cached_property import cached_property

# Exceptions


class TermNotFound(Exception):
    pass


# Postings


class PostingReader:
    """Base class for objects that step through the postings of one term.

    A posting is a document ordinal plus the token positions of the term in
    that document. The reader starts on the first posting (if there is one);
    call :meth:`next` to move on and :meth:`is_active` to check whether there
    are any postings left::

        p = reader.postings("title", "alfa")
        while p.is_active():
            print(p.id(), p.value())
            p.next()
    """

    def is_active(self):
        """Returns True if the reader is still positioned on a posting."""
        raise NotImplementedError

    def id(self):
        """Returns the document ordinal of the current posting."""
        raise NotImplementedError

    def value(self):
        """Returns the tuple of positions of the current posting."""
        raise NotImplementedError

    def next(self):
        """Moves to the next posting. Returns True if the reader is still
        active afterwards.
        """
        raise NotImplementedError

    def all_ids(self):
        """Yields the remaining document ordinals."""
        while self.is_active():
            yield self.id()
            self.next()

    def all_items(self):
        """Yields the remaining ``(docnum, positions)`` pairs."""
        while self.is_active():
            yield self.id(), self.value()
            self.next()


class ListPostings(PostingReader):
    """Steps through an in-memory list of ``(docnum, positions)`` pairs."""

    def __init__(self, items):
        self._items = items
        self._i = 0

    def __repr__(self):
        return f"{self.__class__.__name__}({len(self._items)} postings)"

    def is_active(self):
        return self._i < len(self._items)

    def id(self):
        return self._items[self._i][0]

    def value(self):
        return self._items[self._i][1]

    def next(self):
        self._i += 1
        return self.is_active()


class MultiPostings(PostingReader):
    """Chains the postings of several sub-readers, adding each sub-reader's
    document offset to the ordinals.
    """

    def __init__(self, readers, offsets):
        self._readers = readers
        self._offsets = offsets
        self._current = 0
        self._skip_finished()

    def _skip_finished(self):
        while (
            self._current < len(self._readers)
            and not self._readers[self._current].is_active()
        ):
            self._current += 1

    def is_active(self):
        return self._current < len(self._readers)

    def id(self):
        return self._readers[self._current].id() + self._offsets[self._current]

    def value(self):
        return self._readers[self._current].value()

    def next(self):
        self._readers[self._current].next()
        self._skip_finished()
        return self.is_active()


# Reader base class


class CorpusReader:
    """Do not instantiate this object directly. Instead use Corpus.reader().

    Ordinals run from 0 to ``doc_count_all() - 1`` and include deleted
    documents; :meth:`doc_count` only counts the live ones.
    """

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def __contains__(self, term):
        """Returns True if the given (fieldname, text) term is in this
        reader.
        """
        raise NotImplementedError

    def close(self):
        """Closes the open files associated with this reader."""
        pass

    def is_atomic(self):
        return True

    def leaf_readers(self):
        """Returns a list of ``(reader, docbase)`` pairs for the atomic
        readers that make up this reader.
        """
        return [(self, 0)]

    def doc_count_all(self):
        """Returns the total number of documents, DELETED OR UNDELETED, in
        this reader. This is the number of addressable ordinals.
        """
        raise NotImplementedError

    def doc_count(self):
        """Returns the total number of UNDELETED documents in this reader."""
        return self.doc_count_all() - self.deleted_count()

    def deleted_count(self):
        raise NotImplementedError

    def has_deletions(self):
        """Returns True if the underlying corpus/segment has deleted
        documents.
        """
        raise NotImplementedError

    def is_deleted(self, docnum):
        """Returns True if the given document number is marked deleted."""
        raise NotImplementedError

    def all_doc_ids(self):
        """Returns an iterator of all (undeleted) document IDs in the
        reader.
        """
        is_deleted = self.is_deleted
        return (
            docnum for docnum in range(self.doc_count_all()) if not is_deleted(docnum)
        )

    def stored_fields(self, docnum, fieldnames=None):
        """Returns the stored field values of the given document as a
        dictionary.

        :param docnum: the ordinal of the document.
        :param fieldnames: if given, only these fields are returned.
        """
        raise NotImplementedError

    def all_stored_fields(self):
        """Yields the stored fields for all non-deleted documents."""
        for docnum in self.all_doc_ids():
            yield self.stored_fields(docnum)

    def field_names(self):
        """Returns the names of all fields that have indexed terms."""
        return sorted({fieldname for fieldname, _ in self.terms()})

    def terms(self):
        """Yields ``(fieldname, text)`` tuples for every term in the reader,
        in sorted order.
        """
        raise NotImplementedError

    def doc_frequency(self, fieldname, text):
        """Returns how many documents the given term appears in."""
        return sum(1 for _ in self.postings(fieldname, text).all_ids())

    def postings(self, fieldname, text):
        """Returns a :class:`PostingReader` for the given term.

        :raises TermNotFound: if the term is not in the reader.
        """
        raise NotImplementedError


# Multi reader


class MultiReader(CorpusReader):
    """Presents several sub-readers as a single reader. The ordinal space is
    the concatenation of the sub-readers' ordinal spaces, in order.
    """

    def __init__(self, readers):
        self.readers = list(readers)
        self.is_closed = False

    def __repr__(self):
        return f"{self.__class__.__name__}({self.readers!r})"

    def __contains__(self, term):
        return any(r.__contains__(term) for r in self.readers)

    @cached_property
    def doc_offsets(self):
        offsets = []
        base = 0
        for r in self.readers:
            offsets.append(base)
            base += r.doc_count_all()
        return offsets

    def _document_segment(self, docnum):
        return max(0, bisect_right(self.doc_offsets, docnum) - 1)

    def _segment_and_docnum(self, docnum):
        segmentnum = self._document_segment(docnum)
        offset = self.doc_offsets[segmentnum]
        return segmentnum, docnum - offset

    def is_atomic(self):
        return False

    def leaf_readers(self):
        leaves = []
        for r, offset in zip(self.readers, self.doc_offsets):
            leaves.extend((leaf, offset + base) for leaf, base in r.leaf_readers())
        return leaves

    def close(self):
        for r in self.readers:
            r.close()
        self.is_closed = True

    def doc_count_all(self):
        return sum(r.doc_count_all() for r in self.readers)

    def doc_count(self):
        return sum(r.doc_count() for r in self.readers)

    def deleted_count(self):
        return sum(r.deleted_count() for r in self.readers)

    def has_deletions(self):
        return any(r.has_deletions() for r in self.readers)

    def is_deleted(self, docnum):
        segmentnum, segmentdoc = self._segment_and_docnum(docnum)
        return self.readers[segmentnum].is_deleted(segmentdoc)

    def stored_fields(self, docnum, fieldnames=None):
        segmentnum, segmentdoc = self._segment_and_docnum(docnum)
        return self.readers[segmentnum].stored_fields(segmentdoc, fieldnames)

    def terms(self):
        last = None
        for term in merge(*[r.terms() for r in self.readers]):
            if term != last:
                yield term
                last = term

    def postings(self, fieldname, text):
        term = (fieldname, text)
        readers = []
        offsets = []
        for r, offset in zip(self.readers, self.doc_offsets):
            if term in r:
                readers.append(r.postings(fieldname, text))
                offsets.append(offset)

        if not readers:
            raise TermNotFound(term)
        return MultiPostings(readers, offsets)
