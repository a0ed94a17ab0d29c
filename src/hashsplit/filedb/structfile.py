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


"""
File-like wrappers that add methods for reading and writing binary values
(variable length integers, length-prefixed strings, pickles, fixed-size
integers) to the underlying file object.
"""

from io import BytesIO
from pickle import dump, load
from struct import Struct

_int_struct = Struct("!i")
_ulong_struct = Struct("!Q")

pack_int, unpack_int = _int_struct.pack, _int_struct.unpack
pack_ulong, unpack_ulong = _ulong_struct.pack, _ulong_struct.unpack

_INT_SIZE = _int_struct.size
_LONG_SIZE = _ulong_struct.size


# Variable length integers


def varint(i):
    """Encodes the given non-negative integer as a variable-length byte
    string, seven bits per byte with the high bit marking continuation.

    >>> varint(1)
    b'\\x01'
    >>> varint(300)
    b'\\xac\\x02'
    """
    if i < 0:
        raise ValueError(f"Can't encode negative number {i!r} as varint")

    out = bytearray()
    while i > 0x7F:
        out.append((i & 0x7F) | 0x80)
        i >>= 7
    out.append(i)
    return bytes(out)


def read_varint(readfn):
    """Reads a variable-length encoded integer.

    Args:
        readfn (callable): a ``read(n)`` function returning bytes.

    Returns:
        int: the decoded integer.
    """
    b = readfn(1)
    if not b:
        raise EOFError("Unexpected end of file while reading varint")
    b = b[0]
    i = b & 0x7F
    shift = 7
    while b & 0x80:
        b = readfn(1)[0]
        i |= (b & 0x7F) << shift
        shift += 7
    return i


class StructFile:
    """Wraps a normal file (or file-like) object and provides additional
    methods for reading and writing binary values.

    The corpus files (table of contents, stored fields, postings) are all
    written and read through this class, so the on-disk encoding of a value
    is defined in exactly one place.
    """

    def __init__(self, fileobj, name=None, onclose=None):
        """
        Initialize a StructFile object.

        Args:
            fileobj (file-like object): The file-like object to wrap.
            name (str, optional): The name of the file. Defaults to None.
            onclose (callable, optional): Called with this object when the
                StructFile is closed. Defaults to None.
        """
        self.file = fileobj
        self._name = name
        self.onclose = onclose
        self.is_closed = False

        self.is_real = hasattr(fileobj, "fileno")
        if self.is_real:
            self.fileno = fileobj.fileno

    def __repr__(self):
        return f"{self.__class__.__name__}({self._name!r})"

    def __str__(self):
        return self._name

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def read(self, *args, **kwargs):
        return self.file.read(*args, **kwargs)

    def write(self, *args, **kwargs):
        return self.file.write(*args, **kwargs)

    def tell(self, *args, **kwargs):
        return self.file.tell(*args, **kwargs)

    def seek(self, *args, **kwargs):
        return self.file.seek(*args, **kwargs)

    def flush(self):
        """Flushes the buffer of the wrapped file. This is a no-op if the
        wrapped file does not have a flush method.
        """
        if hasattr(self.file, "flush"):
            self.file.flush()

    def close(self):
        """Closes the wrapped file and calls the ``onclose`` callback, if
        one was given.
        """
        if self.is_closed:
            raise ValueError("This file is already closed")
        if self.onclose:
            self.onclose(self)
        if hasattr(self.file, "close"):
            self.file.close()
        self.is_closed = True

    def write_varint(self, i):
        """Writes a variable-length unsigned integer to the wrapped file."""
        self.write(varint(i))

    def read_varint(self):
        """Reads a variable-length encoded unsigned integer from the wrapped
        file.
        """
        return read_varint(self.read)

    def write_string(self, s):
        """Writes a byte string to the wrapped file, prefixed with its length
        so it can be read back without knowing how long it was.
        """
        self.write_varint(len(s))
        self.write(s)

    def read_string(self):
        """Reads a length-prefixed byte string from the wrapped file."""
        return self.read(self.read_varint())

    def skip_string(self):
        """Moves past a length-prefixed byte string without reading it."""
        length = self.read_varint()
        self.seek(length, 1)

    def write_pickle(self, obj, protocol=-1):
        """Writes a pickled representation of obj to the wrapped file."""
        dump(obj, self.file, protocol)

    def read_pickle(self):
        """Reads a pickled object from the wrapped file."""
        return load(self.file)

    def write_int(self, n):
        self.write(pack_int(n))

    def read_int(self):
        return unpack_int(self.read(_INT_SIZE))[0]

    def write_ulong(self, n):
        self.write(pack_ulong(n))

    def read_ulong(self):
        return unpack_ulong(self.read(_LONG_SIZE))[0]

    def get_ulong(self, position):
        """Reads an unsigned long at the given position without disturbing
        the caller's idea of the current position.
        """
        here = self.tell()
        self.seek(position)
        try:
            return self.read_ulong()
        finally:
            self.seek(here)


class BufferFile(StructFile):
    """A StructFile backed by an in-memory byte string instead of a real
    file. Used by :class:`~hashsplit.filedb.filestore.RamStorage`.
    """

    def __init__(self, buf, name=None, onclose=None):
        self._buf = buf
        self._name = name
        self.file = BytesIO(buf)
        self.onclose = onclose

        self.is_real = False
        self.is_closed = False
