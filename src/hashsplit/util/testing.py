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


import os.path
import random
import shutil
import tempfile

from hashsplit.filedb.filestore import FileStorage

IDCHARS = "0123456789abcdefghijklmnopqrstuvwxyz"


def random_name(size=28):
    """Returns a random name made of lowercase letters and digits."""
    return "".join(random.choice(IDCHARS) for _ in range(size))


class TempDir:
    """Context manager that creates a temporary directory and removes it (and
    everything in it) on exit, unless ``keepdir`` is True.
    """

    def __init__(
        self,
        basename="",
        parentdir=None,
        ext=".tmpcp",
        suppress=frozenset(),
        keepdir=False,
    ):
        self.basename = basename or random_name(8)
        self.parentdir = parentdir

        dirname = parentdir or tempfile.mkdtemp(ext, self.basename)
        self.dir = os.path.abspath(dirname)
        self.suppress = suppress
        self.keepdir = keepdir

    def __enter__(self):
        if not os.path.exists(self.dir):
            os.makedirs(self.dir)
        return self.dir

    def cleanup(self):
        pass

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        if not self.keepdir:
            try:
                shutil.rmtree(self.dir)
            except OSError as e:
                print(f"Can't remove temp dir: {e}")

        if exc_type is not None:
            if self.keepdir:
                print(f"Temp dir={self.dir}")
            if exc_type not in self.suppress:
                return False


class TempStorage(TempDir):
    """A :class:`TempDir` that yields a
    :class:`~hashsplit.filedb.filestore.FileStorage` on the directory.
    """

    def __enter__(self):
        dirpath = TempDir.__enter__(self)
        self.store = FileStorage(dirpath)
        return self.store

    def cleanup(self):
        self.store.close()


class TempCorpus(TempStorage):
    """A :class:`TempStorage` that yields a new, empty corpus in the
    temporary directory::

        with TempCorpus("split") as corpus:
            with corpus.writer() as w:
                w.add_document(id="a")
    """

    def __enter__(self):
        fstore = TempStorage.__enter__(self)
        return fstore.create_corpus()
