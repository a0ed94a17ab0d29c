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


"""Splits a corpus into shards by the hash of each document's identifier.

The split runs in passes over a single read-only corpus:

1. The shard of every document is computed once, from the MD5 hash of its
   identifier (see :mod:`hashsplit.sharding`).
2. For each shard, an :class:`~hashsplit.overlay.OverlayView` of the corpus
   is reset and every document that belongs to another shard is hidden. The
   view is then copied into a freshly created output corpus.

The input is never modified and never copied more than once per shard::

    from hashsplit.corpus import open_dir
    from hashsplit.splitting import HashSplitter

    reader = open_dir("corpus", readonly=True).reader()
    HashSplitter(idfield="url").split(reader, ["out/part-0", "out/part-1"])
"""

import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from enum import Enum

from loguru import logger

from hashsplit.corpus import EmptyCorpusError, create_in, open_dir
from hashsplit.filedb.filestore import FileStorage
from hashsplit.overlay import OverlayView
from hashsplit.progress import NullProgress
from hashsplit.reading import MultiReader
from hashsplit.sharding import (
    DEFAULT_ID_FIELD,
    MAX_SHARDS,
    ShardAssigner,
    SplitConfigError,
    SplitPreconditionError,
)


class SplitState(Enum):
    """The stages of a split, in order. A failure in any stage ends the
    split; nothing is retried or resumed.
    """

    IDLE = "idle"
    VALIDATING = "validating"
    HASHING = "hashing"
    SHARD_PASS = "shard pass"
    DONE = "done"


def part_name(shardnum):
    """Returns the directory name of the given shard inside the output
    directory.

    >>> part_name(3)
    'part-3'
    """
    return f"part-{shardnum}"


class HashSplitter:
    """Splits a reader into N output corpora, one per shard.

    :param idfield: the stored field holding each document's unique
        identifier.
    :param progress: a :class:`~hashsplit.progress.ProgressReporter`; by
        default nothing is reported.
    :param procs: the number of shard passes to run at the same time. With
        more than one, every pass works on its own fork of the overlay view.
    """

    def __init__(self, idfield=DEFAULT_ID_FIELD, progress=None, procs=1):
        if procs < 1:
            raise SplitConfigError(f"Invalid number of processes {procs!r}")
        if not idfield:
            raise SplitConfigError("The identifier field name can't be empty")

        self.idfield = idfield
        self.progress = progress or NullProgress()
        self.procs = procs
        self.state = SplitState.IDLE
        self.numshards = None

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(idfield={self.idfield!r}, procs={self.procs!r})"
        )

    def _set_state(self, state):
        logger.debug("{!r}: {} -> {}", self, self.state.value, state.value)
        self.state = state

    def split(self, reader, outputs):
        """Writes the documents of ``reader`` to ``outputs``, each document
        to the output whose index is its shard.

        Documents that are deleted in the reader are not written anywhere.
        Every output corpus is created from scratch, replacing any corpus
        that was there before.

        :param reader: the :class:`~hashsplit.reading.CorpusReader` to split.
            It is only read.
        :param outputs: one directory path or
            :class:`~hashsplit.filedb.filestore.Storage` per shard.
        :raises SplitPreconditionError: if there are fewer than two outputs
            or fewer than two live documents.
        :raises MissingIdFieldError: if a document has no identifier.
        :returns: the number of documents written to each shard.
        """
        self._set_state(SplitState.VALIDATING)
        if outputs is None or len(outputs) < 2:
            raise SplitPreconditionError("Invalid number of outputs")
        if reader is None or reader.doc_count() < 2:
            raise SplitPreconditionError("Not enough documents for splitting")

        self.numshards = len(outputs)
        assigner = ShardAssigner(self.numshards, self.idfield)

        # Hashing sees the source deletions only, before any shard is carved
        # out, so the table does not depend on the order of the passes
        view = OverlayView(reader)

        self._set_state(SplitState.HASHING)
        logger.info("Generating shard hashes...")
        table = assigner.assign_reader(view, self.progress)
        logger.info("Generated hashes for {} document(s)", view.doc_count())

        self._set_state(SplitState.SHARD_PASS)
        if self.procs > 1:
            counts = self._split_concurrent(view, table, outputs)
        else:
            counts = [
                self._write_shard(view, table, shardnum, output, self.progress)
                for shardnum, output in enumerate(outputs)
            ]

        self._set_state(SplitState.DONE)
        logger.info("Done.")
        return counts

    def _split_concurrent(self, view, table, outputs):
        # Each pass gets its own working deletions; the table and the
        # original deletions are only read
        with ThreadPoolExecutor(max_workers=self.procs) as executor:
            futures = [
                executor.submit(
                    self._write_shard,
                    view.fork(),
                    table,
                    shardnum,
                    output,
                    NullProgress(),
                )
                for shardnum, output in enumerate(outputs)
            ]
            done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
            for future in not_done:
                future.cancel()
            for future in done:
                # Re-raises the first failure
                future.result()
            return [future.result() for future in futures]

    def _write_shard(self, view, table, shardnum, output, progress):
        phase = f"shard {shardnum + 1} of {self.numshards}"
        logger.info("Generating documents for {}...", phase)

        view.undelete_all()
        maxdoc = view.doc_count_all()
        progress.start(phase)
        for docnum in range(maxdoc):
            if table[docnum] != shardnum:
                view.delete_document(docnum)
            progress.update(phase, (100 * docnum) // maxdoc)
        progress.finish(phase)

        count = view.doc_count()
        logger.info("Writing {} document(s) to {}...", count, phase)
        corpus = create_in(output)
        try:
            with corpus.writer() as w:
                w.add_reader(view)
        finally:
            corpus.close()
        logger.info("Wrote to {} ({!r})", phase, output)
        return count


def split_corpus(
    inputs, outdir, numshards, idfield=DEFAULT_ID_FIELD, progress=None, procs=1
):
    """Splits one or more corpus directories into ``numshards`` corpora in
    ``outdir/part-0`` .. ``outdir/part-<numshards - 1>``.

    Input paths that are not directories, or do not contain a corpus, are
    skipped with a warning. Several inputs are split as if they were one
    corpus.

    :param inputs: a list of input corpus directories.
    :param outdir: the output directory; created if it doesn't exist.
    :param numshards: the number of shards, at least 2.
    :param idfield: the stored field holding each document's unique
        identifier.
    :param progress: a :class:`~hashsplit.progress.ProgressReporter`.
    :param procs: the number of shard passes to run at the same time.
    :raises SplitConfigError: if ``numshards``, ``idfield`` or ``procs`` is
        invalid, no input is usable, or the output directory can't be
        created.
    :returns: the number of documents written to each shard.
    """
    if outdir is None:
        raise SplitConfigError("Required argument missing: output directory")
    if numshards is None or numshards < 2 or numshards > MAX_SHARDS:
        raise SplitConfigError(f"Invalid number of shards: {numshards!r}")

    splitter = HashSplitter(idfield=idfield, progress=progress, procs=procs)

    readers = []
    try:
        for path in inputs:
            if not os.path.isdir(path):
                logger.warning("Invalid input path - skipping: {}", path)
                continue
            try:
                corpus = open_dir(path, readonly=True)
            except EmptyCorpusError:
                logger.warning("Invalid input corpus - skipping: {}", path)
                continue
            readers.append(corpus.reader())

        if not readers:
            raise SplitConfigError("No input corpora to process")

        if len(readers) == 1:
            reader = readers[0]
        else:
            reader = MultiReader(readers)

        # Check the input before creating anything on disk
        if reader.doc_count() < 2:
            raise SplitPreconditionError("Not enough documents for splitting")

        try:
            FileStorage(outdir).create()
        except OSError as e:
            raise SplitConfigError(f"Can't create output directory: {outdir} ({e})")

        outputs = [
            FileStorage(os.path.join(outdir, part_name(shardnum)))
            for shardnum in range(numshards)
        ]
        return splitter.split(reader, outputs)
    finally:
        for r in readers:
            r.close()
