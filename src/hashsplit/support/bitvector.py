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
An implementation of an object that acts like a collection of on/off bits.
The deletion overlays keep one of these per segment.
"""

import operator
from array import array

#: Table of the number of '1' bits in each byte (0-255)
BYTE_COUNTS = array("B", [bin(byte).count("1") for byte in range(256)])


class BitVector:
    """
    Implements a memory-efficient array of bits.

    >>> bv = BitVector(10)
    >>> bv
    <BitVector 0000000000>
    >>> bv[5] = True
    >>> bv
    <BitVector 0000010000>

    You can initialize the BitVector using an iterable of integers representing
    bit positions to turn on.

    >>> bv2 = BitVector(10, [2, 4, 7])
    >>> bv2
    <BitVector 0010100100>
    >>> bv2[2]
    True

    BitVector supports the bit-wise ``|`` (or) operation between itself and
    another BitVector of equal size, or itself and a collection of integers.

    >>> bv | bv2
    <BitVector 0010110100>

    Note that ``BitVector.__len__()`` returns the number of "on" bits, not
    the size of the bit array. This is to make BitVector interchangeable with
    a set()/frozenset() of integers. To get the size, use BitVector.size.
    """

    def __init__(self, size, source=None, bits=None):
        """
        Initializes a BitVector object.

        Args:
            size (int): The number of addressable bits.
            source (iterable, optional): Integers representing bit positions
                to turn on. Defaults to None.
            bits (array, optional): An array of bytes to use as the bit
                storage. The array is used as-is, not copied.
        """
        self.size = size

        if bits is not None:
            self.bits = bits
        else:
            self.bits = array("B", ([0x00] * ((size >> 3) + 1)))

        self.bcount = None

        if source:
            self.set_from(source)

    def __eq__(self, other):
        if isinstance(other, BitVector):
            return self.size == other.size and self.bits == other.bits
        return False

    def __repr__(self):
        return f"<BitVector {self.__str__()}>"

    def __len__(self):
        return self.count()

    def __contains__(self, index):
        return self[index]

    def __iter__(self):
        """
        Returns an iterator over the "on" bits in the BitVector.

        Yields:
            int: The indices of the "on" bits in the BitVector.
        """
        bits = self.bits
        for i in range(0, self.size):
            if bits[i >> 3] & (1 << (i & 7)):
                yield i

    def __str__(self):
        get = self.__getitem__
        return "".join("1" if get(i) else "0" for i in range(0, self.size))

    def __bool__(self):
        return self.count() > 0

    def __getitem__(self, index):
        """
        Returns the value of the bit at the given index.

        Args:
            index (int): The index of the bit to retrieve.

        Returns:
            bool: True if the bit is "on", False otherwise.
        """
        return self.bits[index >> 3] & (1 << (index & 7)) != 0

    def __setitem__(self, index, value):
        if value:
            self.set(index)
        else:
            self.clear(index)

    def __or__(self, other):
        """
        Performs a bit-wise OR operation between two BitVector objects.

        Args:
            other (BitVector): The other BitVector object, or a collection of
                integers, to perform the OR operation with.

        Returns:
            BitVector: The result of the bit-wise OR operation.
        """
        if not isinstance(other, BitVector):
            other = BitVector(self.size, source=other)
        if self.size != other.size:
            raise ValueError("Can't combine bitvectors of different sizes")
        return BitVector(
            self.size, bits=array("B", map(operator.__or__, self.bits, other.bits))
        )

    def count(self):
        """
        Returns the number of "on" bits in the BitVector. The result is
        cached until the next call to :meth:`set` or :meth:`clear`.

        Returns:
            int: The number of "on" bits in the BitVector.
        """
        if self.bcount is None:
            self.bcount = sum(BYTE_COUNTS[b & 0xFF] for b in self.bits)
        return self.bcount

    def set(self, index):
        """
        Turns the bit at the given position on.

        Args:
            index (int): The index of the bit to turn on.

        Raises:
            IndexError: If the index is outside the vector.
        """
        if index < 0 or index >= self.size:
            raise IndexError(f"Position {index!r} outside the vector")
        self.bits[index >> 3] |= 1 << (index & 7)
        self.bcount = None

    def clear(self, index):
        """
        Turns the bit at the given position off.

        Args:
            index (int): The index of the bit to turn off.
        """
        self.bits[index >> 3] &= ~(1 << (index & 7))
        self.bcount = None

    def set_from(self, iterable):
        """
        Turns on the bits at the positions specified by an iterable of integers.

        Args:
            iterable (iterable): An iterable of integers representing positions.
        """
        set_var = self.set
        for index in iterable:
            set_var(index)

    def copy(self):
        """
        Returns an independent copy of the BitVector. Changing bits in the
        copy does not affect this object.

        Returns:
            BitVector: A copy of the BitVector.
        """
        bv = BitVector(self.size, bits=array("B", self.bits))
        bv.bcount = self.bcount
        return bv
