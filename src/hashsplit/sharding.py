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


"""Maps document identifiers to shard numbers.

The shard of a document is the MD5 digest of the UTF-8 encoded identifier,
read as an unsigned 128-bit big-endian integer, modulo the number of shards::

    >>> shard_for("a", 2)
    1

The same identifier and shard count give the same shard in every process on
every machine, so a router can recompute the assignment at query time without
access to the split.
"""

from array import array
from hashlib import md5

from loguru import logger

from hashsplit.progress import NullProgress

#: Field holding the unique document identifier unless told otherwise
DEFAULT_ID_FIELD = "id"

#: The assignment table stores shard numbers as unsigned shorts
MAX_SHARDS = 0xFFFF


# Exceptions


class SplitError(Exception):
    """Base class for errors that abort a split."""


class SplitConfigError(SplitError):
    """Raised for unusable settings: no valid input corpora, an output
    directory that can't be created, a bad shard count.
    """


class SplitPreconditionError(SplitError):
    """Raised when the input or the requested outputs can't be split: fewer
    than two outputs, or fewer than two live documents.
    """


class MissingIdFieldError(SplitError):
    """Raised when a document has no value for the identifier field.

    Every document must carry its identifier; skipping one would silently
    put it in an arbitrary shard, so the whole split is aborted instead.

    Attributes:
        fieldname (str): The name of the identifier field.
        docnum (int): The ordinal of the offending document.
    """

    def __init__(self, fieldname, docnum):
        self.fieldname = fieldname
        self.docnum = docnum
        super().__init__(
            f"Null or nonexistent document field {fieldname!r} in document "
            f"{docnum}. Set the correct unique ID field using --id-field."
        )


def shard_for(identifier, numshards):
    """Returns the shard (``0 <= shard < numshards``) of the given document
    identifier.

    :param identifier: the document's unique identifier.
    :param numshards: the number of shards; must be at least 1.
    :rtype: int
    """
    digest = md5(identifier.encode("utf-8")).digest()
    return int.from_bytes(digest, "big") % numshards


class ShardAssigner:
    """Computes the shard of every document in a reader.

    :param numshards: the number of shards, between 2 and :data:`MAX_SHARDS`.
    :param idfield: the name of the stored field holding each document's
        unique identifier.
    """

    def __init__(self, numshards, idfield=DEFAULT_ID_FIELD):
        if numshards < 2:
            raise SplitPreconditionError(
                f"Invalid number of shards {numshards!r}, need at least 2"
            )
        if numshards > MAX_SHARDS:
            raise SplitPreconditionError(
                f"Invalid number of shards {numshards!r}, at most {MAX_SHARDS}"
            )
        if not idfield:
            raise SplitConfigError("The identifier field name can't be empty")

        self.numshards = numshards
        self.idfield = idfield

    def __repr__(self):
        return f"{self.__class__.__name__}({self.numshards!r}, idfield={self.idfield!r})"

    def assign(self, identifier, docnum=None):
        """Returns the shard of a single identifier.

        :raises MissingIdFieldError: if the identifier is None or empty.
        """
        if identifier is None or identifier == "":
            raise MissingIdFieldError(self.idfield, docnum)
        return shard_for(str(identifier), self.numshards)

    def assign_reader(self, reader, progress=None):
        """Builds the assignment table for a reader: an ``array("H")`` with
        one shard number per ordinal in ``range(reader.doc_count_all())``.

        Only the identifier field is fetched from each document. Every
        ordinal is hashed, including documents the reader reports as
        deleted, so the table can be indexed directly by ordinal in the
        shard passes whatever the deletion state.

        :param reader: the reader to assign; read in its current state, so
            pass it before any shard filtering is applied.
        :param progress: an optional
            :class:`~hashsplit.progress.ProgressReporter`.
        :raises MissingIdFieldError: on the first document without an
            identifier.
        """
        progress = progress or NullProgress()
        idfield = self.idfield
        fieldnames = (idfield,)
        maxdoc = reader.doc_count_all()

        table = array("H", bytes(2 * maxdoc))
        progress.start("hashing")
        for docnum in range(maxdoc):
            fields = reader.stored_fields(docnum, fieldnames=fieldnames)
            table[docnum] = self.assign(fields.get(idfield), docnum)
            progress.update("hashing", (100 * docnum) // maxdoc)
        progress.finish("hashing")

        logger.debug("Assigned {} ordinal(s) to {} shards", maxdoc, self.numshards)
        return table
