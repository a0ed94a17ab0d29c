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


from marshal import loads
from threading import Lock

from cached_property import threaded_cached_property

from hashsplit.filedb.structfile import _LONG_SIZE
from hashsplit.reading import CorpusReader, ListPostings, TermNotFound
from hashsplit.util import synchronized

# Reader class


class SegmentReader(CorpusReader):
    """
    Reads the documents and postings of one segment of a corpus.

    Stored fields and postings are read from the segment files on demand.
    Every method that seeks in one of the files holds ``_sync_lock``, so a
    single SegmentReader can be shared by several threads (for example the
    concurrent shard passes of
    :class:`~hashsplit.splitting.HashSplitter`).

    Do not instantiate this class directly; use ``Corpus.reader()``.

    Parameters:
    - storage (Storage): The storage object holding the segment files.
    - segment (Segment): The segment to read from.
    """

    def __init__(self, storage, segment):
        self.storage = storage
        self.segment = segment

        # Stored fields file: the directory of record offsets is at the
        # end, located by the last two longs (directory position, count)
        self.storedfields = storage.open_file(segment.storedfields_filename)
        self.storedfields.seek(-2 * _LONG_SIZE, 2)
        dirpos = self.storedfields.read_ulong()
        self.dc = self.storedfields.read_ulong()
        self._dirpos = dirpos
        assert self.dc == segment.doc_count_all()

        # Term postings file: lazy load
        self.postfile = None

        deleted = segment.deleted
        self._deleted = frozenset(deleted) if deleted else frozenset()

        self.is_closed = False
        self._sync_lock = Lock()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.segment!r})"

    def __contains__(self, term):
        return term in self.termsindex

    @synchronized
    def _open_postfile(self):
        if self.postfile is None:
            self.postfile = self.storage.open_file(self.segment.termposts_filename)
        return self.postfile

    @threaded_cached_property
    def termsindex(self):
        """The segment's term table, mapping ``(fieldname, text)`` to
        ``(offset, docfreq)`` in the postings file. The table is pickled at
        the position given by the last long of the file.
        """
        postfile = self._open_postfile()
        with self._sync_lock:
            postfile.seek(-_LONG_SIZE, 2)
            postfile.seek(postfile.read_ulong())
            return postfile.read_pickle()

    def close(self):
        self.storedfields.close()
        if self.postfile:
            self.postfile.close()
        self.is_closed = True

    def doc_count_all(self):
        return self.dc

    def deleted_count(self):
        return len(self._deleted)

    def has_deletions(self):
        return bool(self._deleted)

    def is_deleted(self, docnum):
        return docnum in self._deleted

    @synchronized
    def stored_fields(self, docnum, fieldnames=None):
        """
        Returns the stored fields of a document as a dictionary.

        A stored record is a count followed by one ``(name, value)`` pair of
        length-prefixed strings per field, so when ``fieldnames`` is given
        the values of the other fields are skipped without being read or
        unmarshalled.

        Args:
            docnum (int): The segment ordinal of the document.
            fieldnames (iterable, optional): Only return these fields.

        Raises:
            IndexError: If the ordinal is outside the segment.
        """
        if docnum < 0 or docnum >= self.dc:
            raise IndexError(f"No document {docnum} in {self!r}")

        wanted = None if fieldnames is None else set(fieldnames)
        sf = self.storedfields
        sf.seek(sf.get_ulong(self._dirpos + docnum * _LONG_SIZE))

        fields = {}
        for _ in range(sf.read_varint()):
            if wanted is not None and len(fields) == len(wanted):
                break
            name = sf.read_string().decode("utf-8")
            if wanted is None or name in wanted:
                fields[name] = loads(sf.read_string())
            else:
                sf.skip_string()
        return fields

    def terms(self):
        return iter(sorted(self.termsindex))

    def postings(self, fieldname, text):
        """
        Returns a posting reader for a term. Documents deleted in this
        segment are left out.

        Args:
            fieldname (str): The field name.
            text (str): The term text.

        Raises:
            TermNotFound: If the term is not in the segment.
        """
        term = (fieldname, text)
        try:
            offset, docfreq = self.termsindex[term]
        except KeyError:
            raise TermNotFound(term)

        items = self._read_postings(offset, docfreq)
        deleted = self._deleted
        if deleted:
            items = [item for item in items if item[0] not in deleted]
        return ListPostings(items)

    @synchronized
    def _read_postings(self, offset, docfreq):
        postfile = self.postfile
        postfile.seek(offset)
        read_varint = postfile.read_varint

        items = []
        docnum = 0
        for _ in range(docfreq):
            docnum += read_varint()
            pos = 0
            positions = []
            for _ in range(read_varint()):
                pos += read_varint()
                positions.append(pos)
            items.append((docnum, tuple(positions)))
        return items
