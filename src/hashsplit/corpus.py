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


"""Contains the main functions/classes for creating, maintaining, and using
a document corpus.

A corpus is an append-only collection of documents split into segments.
Each document is a dictionary of stored field values; string values are
also analyzed into an inverted term index so that postings (document
ordinal and token positions) can be walked per term.
"""

import os.path

_DEF_CORPUS_NAME = "MAIN"


# Exceptions


class CorpusError(Exception):
    """Generic exception class for corpus objects."""


class EmptyCorpusError(CorpusError):
    """Raised when you try to open a corpus in a storage that has none."""


class CorpusVersionError(CorpusError):
    """Raised when you try to open a corpus using a format that the current
    version of the library cannot read. That is, when the corpus you're
    trying to open is either not backward or forward compatible with this
    version.
    """

    def __init__(self, msg, version, release=None):
        super().__init__(msg)
        self.version = version
        self.release = release


# Convenience functions


def create_in(dirname, corpusname=None):
    """Convenience function to create a corpus in a directory. Takes care of
    creating a FileStorage object for you. If the directory does not exist
    yet it is created.

    The corpus is always created empty: files belonging to an existing
    corpus of the same name in that directory are removed.

    :param dirname: the path string of the directory in which to create the
        corpus, or a :class:`~hashsplit.filedb.filestore.Storage` object.
    :param corpusname: the name of the corpus to create; you only need to
        specify this if you are creating multiple corpora within the same
        storage object.
    :returns: :class:`Corpus`
    """

    from hashsplit.filedb.filestore import FileStorage, Storage

    if not corpusname:
        corpusname = _DEF_CORPUS_NAME

    if isinstance(dirname, Storage):
        storage = dirname.create()
    else:
        storage = FileStorage(dirname).create()
    return storage.create_corpus(corpusname)


def open_dir(dirname, corpusname=None, readonly=False):
    """Convenience function for opening a corpus in a directory. Takes care
    of creating a FileStorage object for you. dirname is the filename of the
    directory containing the corpus. corpusname is the name of the corpus to
    open; you only need to specify this if you have multiple corpora within
    the same storage object.

    :param dirname: the path string of the directory in which to open the
        corpus.
    :param corpusname: the name of the corpus to open.
    :param readonly: open the storage read-only, so that nothing in the
        directory can be modified through this corpus.
    """

    from hashsplit.filedb.filestore import FileStorage

    if corpusname is None:
        corpusname = _DEF_CORPUS_NAME

    storage = FileStorage(dirname, readonly=readonly)
    return storage.open_corpus(corpusname)


def exists_in(dirname, corpusname=None):
    """Returns True if dirname contains a corpus.

    :param dirname: the file path of a directory.
    :param corpusname: the name of the corpus. If None, the default corpus
        name is used.
    """

    if os.path.exists(dirname):
        try:
            ix = open_dir(dirname, corpusname=corpusname, readonly=True)
            ix.close()
            return True
        except EmptyCorpusError:
            pass

    return False


# Base class


class Corpus:
    """Represents a collection of documents."""

    def close(self):
        """Closes any open resources held by the Corpus object itself. This
        may not close all resources being used everywhere, for example by a
        Reader.
        """
        pass

    def is_empty(self):
        """Returns True if this corpus is empty (that is, it has never had
        any documents successfully written to it.
        """
        raise NotImplementedError

    def doc_count_all(self):
        """Returns the total number of documents, DELETED OR UNDELETED, in
        this corpus.
        """
        with self.reader() as r:
            return r.doc_count_all()

    def doc_count(self):
        """Returns the total number of UNDELETED documents in this corpus."""
        with self.reader() as r:
            return r.doc_count()

    def reader(self):
        """Returns a CorpusReader object for this corpus.

        :rtype: :class:`hashsplit.reading.CorpusReader`
        """
        raise NotImplementedError

    def writer(self, **kwargs):
        """Returns a CorpusWriter object for this corpus.

        :rtype: :class:`hashsplit.filedb.filewriting.SegmentWriter`
        """
        raise NotImplementedError

    def delete_document(self, docnum):
        """Marks the document with the given ordinal as deleted and commits
        the change immediately.
        """
        with self.writer() as w:
            w.delete_document(docnum)
