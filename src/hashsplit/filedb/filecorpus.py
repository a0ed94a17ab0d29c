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


import re
from bisect import bisect_right
from threading import Lock
from time import time

from hashsplit import __version__
from hashsplit.corpus import (
    _DEF_CORPUS_NAME,
    Corpus,
    CorpusError,
    CorpusVersionError,
    EmptyCorpusError,
)
from hashsplit.filedb.structfile import _INT_SIZE

_CORPUS_VERSION = -201


class FileCorpus(Corpus):
    def __init__(self, storage, create=False, corpusname=_DEF_CORPUS_NAME):
        """
        Represents a corpus stored in a file-based storage.

        The state of the corpus (its segments and their deleted documents)
        lives in a table of contents file named
        ``_<corpusname>_<generation>.toc``. Every commit writes a new
        generation and removes the files no longer referenced by it.

        Args:
            storage (Storage): The storage object used to store the corpus
                files.
            create (bool, optional): Whether to create a new, empty corpus.
                Existing files of a corpus with the same name are removed.
            corpusname (str, optional): The name of the corpus.

        Raises:
            EmptyCorpusError: If ``create`` is False and the corpus does not
                exist in the storage.
        """
        self.storage = storage
        self.corpusname = corpusname

        self.generation = self.latest_generation()

        if create:
            self.generation = 0
            self.segment_counter = 0
            self.segments = SegmentSet()

            # Clear existing files
            prefix = f"_{self.corpusname}_"
            for filename in self.storage:
                if filename.startswith(prefix):
                    storage.delete_file(filename)

            self._write()
        elif self.generation >= 0:
            self._read()
        else:
            raise EmptyCorpusError(
                f"No corpus named {corpusname!r} in storage {storage!r}"
            )

        self.segment_num_lock = Lock()

    def __repr__(self):
        return f"{self.__class__.__name__}({self.storage!r}, {self.corpusname!r})"

    def latest_generation(self):
        """
        Returns the latest generation number of the TOC files, or -1 if
        there are none.
        """
        pattern = _toc_pattern(self.corpusname)

        maximum = -1
        for filename in self.storage:
            m = pattern.match(filename)
            if m:
                num = int(m.group(1))
                if num > maximum:
                    maximum = num
        return maximum

    def up_to_date(self):
        return self.generation == self.latest_generation()

    def _write(self):
        # Use a temporary file for atomic write.
        tocfilename = self._toc_filename()
        tempfilename = f"{tocfilename}.{time()}"
        stream = self.storage.create_file(tempfilename)

        stream.write_varint(_INT_SIZE)
        stream.write_int(-12345)

        stream.write_int(_CORPUS_VERSION)
        for num in __version__[:3]:
            stream.write_varint(num)

        stream.write_int(self.generation)
        stream.write_int(self.segment_counter)
        stream.write_pickle(self.segments)
        stream.close()

        # Rename temporary file to the proper filename
        self.storage.rename_file(tempfilename, tocfilename, safe=True)

    def _read(self):
        stream = self.storage.open_file(self._toc_filename())
        try:
            if stream.read_varint() != _INT_SIZE:
                raise CorpusError(
                    "Corpus was created on an architecture with different data sizes"
                )

            if stream.read_int() != -12345:
                raise CorpusError("Number misread: byte order problem")

            version = stream.read_int()
            if version != _CORPUS_VERSION:
                raise CorpusVersionError(f"Can't read format {version}", version)
            self.version = version
            self.release = (
                stream.read_varint(),
                stream.read_varint(),
                stream.read_varint(),
            )

            generation = stream.read_int()
            assert generation == self.generation
            self.segment_counter = stream.read_int()
            self.segments = stream.read_pickle()
        finally:
            stream.close()

    def _next_segment_name(self):
        with self.segment_num_lock:
            self.segment_counter += 1
            return f"_{self.corpusname}_{self.segment_counter}"

    def _toc_filename(self):
        return f"_{self.corpusname}_{self.generation}.toc"

    def is_empty(self):
        return len(self.segments) == 0

    def segment_count(self):
        return len(self.segments)

    def commit(self, new_segments=None):
        """
        Writes a new generation of the table of contents.

        Args:
            new_segments (SegmentSet, optional): The new segments to replace
                the existing segments in the corpus.

        Raises:
            CorpusError: If another writer committed since this object read
                the table of contents.
        """
        if not self.up_to_date():
            raise CorpusError(f"{self!r} is out of date, reopen it to commit")

        if new_segments is not None:
            if not isinstance(new_segments, SegmentSet):
                raise ValueError(
                    f"FileCorpus.commit() called with something other than a SegmentSet: {new_segments!r}"
                )
            self.segments = new_segments

        self.generation += 1
        self._write()
        self._clean_files()

    def _clean_files(self):
        # Removes the TOC files of older generations and the files of
        # segments that are no longer referenced
        storage = self.storage
        current_segment_names = {s.name for s in self.segments}

        tocpattern = _toc_pattern(self.corpusname)
        segpattern = _segment_pattern(self.corpusname)

        todelete = set()
        for filename in storage:
            tocm = tocpattern.match(filename)
            segm = segpattern.match(filename)
            if tocm:
                if int(tocm.group(1)) != self.generation:
                    todelete.add(filename)
            elif segm:
                name = segm.group(1)
                if name not in current_segment_names:
                    todelete.add(filename)

        for filename in todelete:
            try:
                storage.delete_file(filename)
            except OSError:
                # Another process still has this file open
                pass

    def doc_count_all(self):
        return self.segments.doc_count_all()

    def doc_count(self):
        return self.segments.doc_count()

    def has_deletions(self):
        return self.segments.has_deletions()

    def is_deleted(self, docnum):
        return self.segments.is_deleted(docnum)

    def reader(self):
        """
        Returns a reader object for the corpus: a SegmentReader if there is
        exactly one segment, otherwise a MultiReader over all segments.
        """
        return self.segments.reader(self.storage)

    def writer(self, **kwargs):
        """
        Returns a writer object for the corpus.

        Args:
            **kwargs: Passed to the
                :class:`~hashsplit.filedb.filewriting.SegmentWriter`
                constructor.
        """
        from hashsplit.filedb.filewriting import SegmentWriter

        return SegmentWriter(self, **kwargs)


# SegmentSet object


class SegmentSet:
    """
    This class is used by the Corpus object to keep track of the segments in
    the corpus, and to translate corpus-wide ordinals into
    ``(segment, segment ordinal)`` pairs.
    """

    def __init__(self, segments=None):
        if segments is None:
            self.segments = []
        else:
            self.segments = segments

        self._doc_offsets = self.doc_offsets()

    def __repr__(self):
        return repr(self.segments)

    def __len__(self):
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def __getitem__(self, n):
        return self.segments.__getitem__(n)

    def append(self, segment):
        self.segments.append(segment)
        self._doc_offsets = self.doc_offsets()

    def _document_segment(self, docnum):
        offsets = self._doc_offsets
        if len(offsets) == 1:
            return 0
        return bisect_right(offsets, docnum) - 1

    def _segment_and_docnum(self, docnum):
        segmentnum = self._document_segment(docnum)
        offset = self._doc_offsets[segmentnum]
        segment = self.segments[segmentnum]
        return segment, docnum - offset

    def copy(self):
        """Returns a deep copy of this set."""
        return self.__class__([s.copy() for s in self.segments])

    def doc_offsets(self):
        """Recomputes the document offset list. This must be called if you
        change self.segments.
        """
        offsets = []
        base = 0
        for s in self.segments:
            offsets.append(base)
            base += s.doc_count_all()
        return offsets

    def doc_count_all(self):
        return sum(s.doc_count_all() for s in self.segments)

    def doc_count(self):
        return sum(s.doc_count() for s in self.segments)

    def has_deletions(self):
        return any(s.has_deletions() for s in self.segments)

    def delete_document(self, docnum):
        segment, segdocnum = self._segment_and_docnum(docnum)
        segment.delete_document(segdocnum)

    def is_deleted(self, docnum):
        segment, segdocnum = self._segment_and_docnum(docnum)
        return segment.is_deleted(segdocnum)

    def reader(self, storage):
        from hashsplit.filedb.filereading import SegmentReader

        segments = self.segments
        if len(segments) == 1:
            return SegmentReader(storage, segments[0])
        else:
            from hashsplit.reading import MultiReader

            return MultiReader(SegmentReader(storage, s) for s in segments)


class Segment:
    """Represents a segment in the corpus. A segment holds a subset of the
    documents: its stored fields file and its postings file.

    Attributes:
        name (str): The name of the segment.
        doccount (int): The number of ordinals in the segment, including
            deleted documents.
        deleted (set): The set of deleted segment ordinals, or None if no
            document in this segment was ever deleted.
    """

    EXTENSIONS = {"storedfields": "dcz", "termposts": "pst"}

    def __init__(self, name, doccount, deleted=None):
        self.name = name
        self.doccount = doccount
        self.deleted = deleted

        self._filenames = set()
        for attr, ext in self.EXTENSIONS.items():
            fname = f"{self.name}.{ext}"
            setattr(self, attr + "_filename", fname)
            self._filenames.add(fname)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"

    def copy(self):
        if self.deleted:
            deleted = set(self.deleted)
        else:
            deleted = None
        return Segment(self.name, self.doccount, deleted)

    def filenames(self):
        return self._filenames

    def doc_count_all(self):
        return self.doccount

    def doc_count(self):
        return self.doccount - self.deleted_count()

    def has_deletions(self):
        return self.deleted_count() > 0

    def deleted_count(self):
        if self.deleted is None:
            return 0
        return len(self.deleted)

    def delete_document(self, docnum):
        """
        Marks the given segment ordinal as deleted. The document is not
        actually removed from the segment files.

        Raises:
            KeyError: If the document number is already deleted.
            IndexError: If the document number is outside the segment.
        """
        if docnum < 0 or docnum >= self.doccount:
            raise IndexError(f"No document {docnum} in segment {self.name!r}")

        if self.deleted is None:
            self.deleted = set()
        elif docnum in self.deleted:
            raise KeyError(
                f"Document {docnum} in segment {self.name!r} is already deleted"
            )

        self.deleted.add(docnum)

    def is_deleted(self, docnum):
        if self.deleted is None:
            return False
        return docnum in self.deleted


# Utility functions


def _toc_pattern(corpusname):
    """
    Returns a regular expression object that matches TOC filenames.

    >>> pattern = _toc_pattern("MAIN")
    >>> bool(pattern.match("_MAIN_1.toc"))
    True
    """
    return re.compile(f"^_{re.escape(corpusname)}_([0-9]+).toc$")


def _segment_pattern(corpusname):
    """
    Returns a regular expression object that matches segment filenames.

    >>> pattern = _segment_pattern("MAIN")
    >>> pattern.match("_MAIN_3.pst").group(1)
    '_MAIN_3'
    """
    exts = "|".join(Segment.EXTENSIONS.values())
    return re.compile(f"^(_{re.escape(corpusname)}_[0-9]+)\\.({exts})$")
