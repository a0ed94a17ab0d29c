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


from array import array
from collections import defaultdict
from marshal import dumps

from loguru import logger

from hashsplit.analysis import simple_analyzer
from hashsplit.filedb.filecorpus import Segment


class PostingPool:
    """Collects postings in memory until the writer commits. Maps each
    ``(fieldname, text)`` term to a list of ``(docnum, positions)`` pairs.
    """

    def __init__(self):
        self.postings = defaultdict(list)

    def __len__(self):
        return len(self.postings)

    def add_posting(self, fieldname, text, docnum, positions):
        self.postings[(fieldname, text)].append((docnum, tuple(positions)))

    def items(self):
        """Yields ``(term, postings)`` in sorted term order, with the
        postings of each term in increasing ordinal order.
        """
        for term in sorted(self.postings):
            yield term, sorted(self.postings[term])


class SegmentWriter:
    """
    Writes a new segment and commits it to a corpus.

    Documents go in one at a time with :meth:`add_document`, or in bulk from
    any reader with :meth:`add_reader`. Nothing is visible to readers of the
    corpus until :meth:`commit` writes a new table of contents.

    The writer can be used as a context manager: it commits when the block
    ends normally and cancels if the block raises an exception::

        with corpus.writer() as w:
            w.add_document(id="a", title="alfa")

    Args:
        corpus (FileCorpus): The corpus to write to.
        analyzer (callable, optional): The analyzer used to turn string field
            values into terms. Defaults to
            :func:`~hashsplit.analysis.simple_analyzer`.
    """

    def __init__(self, corpus, analyzer=None):
        self.corpus = corpus
        self.storage = corpus.storage
        self.segments = corpus.segments.copy()
        self.analyzer = analyzer or simple_analyzer()

        self.name = corpus._next_segment_name()
        # Create a temporary segment to use its .*_filename attributes
        self.segment = Segment(self.name, 0)

        self.docnum = 0
        self._offsets = array("Q")
        self.storedfields = self.storage.create_file(
            self.segment.storedfields_filename
        )
        self.pool = PostingPool()
        self.is_closed = False

    def __repr__(self):
        return f"{self.__class__.__name__}({self.corpus!r}, {self.name!r})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.cancel()
        else:
            self.commit()

    def _check_state(self):
        if self.is_closed:
            raise ValueError("This writer has already been committed or cancelled")

    def add_document(self, **fields):
        """
        Adds a document to the new segment. Every value is stored; string
        values are also analyzed into terms with positions.

        Example:
            writer.add_document(id="a", title="Alfa bravo", year=2010)
        """
        self._check_state()

        for fieldname in sorted(fields):
            value = fields[fieldname]
            if isinstance(value, str):
                for token in self.analyzer(value, positions=True):
                    self._add_token(fieldname, token)

        self._add_stored_fields(fields)
        self.docnum += 1

    def _add_token(self, fieldname, token):
        postings = self.pool.postings[(fieldname, token.text)]
        if postings and postings[-1][0] == self.docnum:
            postings[-1][1].append(token.pos)
        else:
            postings.append((self.docnum, [token.pos]))

    def _add_stored_fields(self, storeddict):
        sf = self.storedfields
        self._offsets.append(sf.tell())
        sf.write_varint(len(storeddict))
        for name, value in storeddict.items():
            sf.write_string(name.encode("utf-8"))
            sf.write_string(dumps(value))

    def add_reader(self, reader):
        """
        Adds the documents of the given reader to the new segment.

        Stored fields are copied for every ordinal the reader does not report
        as deleted, in ordinal order. Then the reader's terms are walked and
        the postings it returns are copied, with their ordinals remapped to
        the new segment. The reader is expected to leave deleted documents
        out of its postings.

        Args:
            reader (CorpusReader): The reader to copy documents from.

        Returns:
            int: The number of documents added.
        """
        self._check_state()

        startdoc = self.docnum

        has_deletions = reader.has_deletions()
        if has_deletions:
            docmap = {}

        for docnum in range(reader.doc_count_all()):
            if (not has_deletions) or (not reader.is_deleted(docnum)):
                self._add_stored_fields(reader.stored_fields(docnum))

                if has_deletions:
                    docmap[docnum] = self.docnum
                self.docnum += 1

        for fieldname, text in reader.terms():
            postreader = reader.postings(fieldname, text)
            for docnum, positions in postreader.all_items():
                if has_deletions:
                    newdoc = docmap[docnum]
                else:
                    newdoc = startdoc + docnum
                self.pool.add_posting(fieldname, text, newdoc, positions)

        count = self.docnum - startdoc
        logger.debug("Added {} document(s) from {!r} to {}", count, reader, self.name)
        return count

    def delete_document(self, docnum):
        """Marks an existing document of the corpus (not one added by this
        writer) as deleted. Takes effect when the writer commits.
        """
        self._check_state()
        self.segments.delete_document(docnum)

    def _write_storedfields(self):
        sf = self.storedfields
        dirpos = sf.tell()
        for offset in self._offsets:
            sf.write_ulong(offset)
        sf.write_ulong(dirpos)
        sf.write_ulong(self.docnum)
        sf.close()

    def _write_postings(self):
        pf = self.storage.create_file(self.segment.termposts_filename)
        termsindex = {}
        for term, postings in self.pool.items():
            termsindex[term] = (pf.tell(), len(postings))

            lastdoc = 0
            for docnum, positions in postings:
                pf.write_varint(docnum - lastdoc)
                lastdoc = docnum

                pf.write_varint(len(positions))
                lastpos = 0
                for pos in positions:
                    pf.write_varint(pos - lastpos)
                    lastpos = pos

        tablepos = pf.tell()
        pf.write_pickle(termsindex)
        pf.write_ulong(tablepos)
        pf.close()

    def commit(self):
        """
        Finishes writing the segment files and commits them, together with
        any deletions, as a new generation of the corpus.
        """
        self._check_state()

        if self.docnum:
            self._write_storedfields()
            self._write_postings()
            self.segments.append(Segment(self.name, self.docnum))
        else:
            # Nothing was added, so don't keep an empty segment
            self.storedfields.close()
            self.storage.delete_file(self.segment.storedfields_filename)

        self.corpus.commit(self.segments)
        self.is_closed = True
        logger.debug(
            "Committed {} with {} document(s), {} term(s)",
            self.name,
            self.docnum,
            len(self.pool),
        )

    def cancel(self):
        """Discards the new segment without changing the corpus."""
        self._check_state()

        self.storedfields.close()
        for filename in self.segment.filenames():
            if self.storage.file_exists(filename):
                self.storage.delete_file(filename)
        self.is_closed = True
