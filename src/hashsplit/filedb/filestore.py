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


import errno
import os
from io import BytesIO

from hashsplit.corpus import _DEF_CORPUS_NAME
from hashsplit.filedb.structfile import BufferFile, StructFile

# Exceptions


class StorageError(Exception):
    """
    Exception raised for errors related to storage operations, such as
    reading or writing corpus files.

    Attributes:
        message -- explanation of the error
    """

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class ReadOnlyError(StorageError):
    """
    Exception raised when attempting to modify a read-only storage.

    Input corpora are opened read-only by the splitter, so any attempt to
    write to (or delete from) an input raises this error instead of touching
    the files.
    """

    def __init__(self, message="Storage is read-only"):
        self.message = message
        super().__init__(message)


# Base class


class Storage:
    """Abstract base class for storage objects.

    A storage object is a virtual flat filesystem, allowing the creation and
    retrieval of file-like objects
    (:class:`~hashsplit.filedb.structfile.StructFile` objects). The default
    implementation (:class:`FileStorage`) uses actual files in a directory.

    All access to corpus files goes through this object. This allows tests
    to keep a corpus in RAM (:class:`RamStorage`) while the command line tool
    works on directories.

    For example, to create a corpus in a new directory::

        st = FileStorage("corpusdir").create()
        corpus = st.create_corpus()
    """

    readonly = False

    def __iter__(self):
        return iter(self.list())

    def __enter__(self):
        self.create()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def create(self):
        """Creates any required implementation-specific resources. For
        example, :class:`FileStorage` creates its directory.

        Calling ``create()`` more than once on the same storage is harmless.

        :return: this storage object, so you can say
            ``st = FileStorage(path).create()``.
        """
        return self

    def destroy(self, *args, **kwargs):
        """Removes any implementation-specific resources related to this
        storage object.
        """
        pass

    def create_corpus(self, corpusname=_DEF_CORPUS_NAME, corpusclass=None):
        """Creates a new, empty corpus in this storage. Any files left over
        from an existing corpus with the same name are removed, so this
        always starts from scratch.

        :param corpusname: the name of the corpus within the storage object.
        :param corpusclass: an optional custom ``Corpus`` sub-class. The
            default is :class:`hashsplit.filedb.filecorpus.FileCorpus`.
        :return: a :class:`hashsplit.corpus.Corpus` instance.
        """
        if self.readonly:
            raise ReadOnlyError

        if corpusclass is None:
            from hashsplit.filedb.filecorpus import FileCorpus

            corpusclass = FileCorpus
        return corpusclass(self, create=True, corpusname=corpusname)

    def open_corpus(self, corpusname=_DEF_CORPUS_NAME, corpusclass=None):
        """Opens an existing corpus (created using :meth:`create_corpus`) in
        this storage.

        :param corpusname: the name of the corpus within the storage object.
        :param corpusclass: an optional custom ``Corpus`` sub-class.
        :raises EmptyCorpusError: if there is no corpus with that name.
        :return: a :class:`hashsplit.corpus.Corpus` instance.
        """
        if corpusclass is None:
            from hashsplit.filedb.filecorpus import FileCorpus

            corpusclass = FileCorpus
        return corpusclass(self, corpusname=corpusname)

    def create_file(self, name):
        """Creates a file with the given name in this storage.

        :param name: the name for the new file.
        :return: a :class:`hashsplit.filedb.structfile.StructFile` instance.
        """
        raise NotImplementedError

    def open_file(self, name, *args, **kwargs):
        """Opens a file with the given name in this storage.

        :param name: the name for the new file.
        :return: a :class:`hashsplit.filedb.structfile.StructFile` instance.
        """
        raise NotImplementedError

    def list(self):
        """Returns a list of file names in this storage."""
        raise NotImplementedError

    def file_exists(self, name):
        raise NotImplementedError

    def delete_file(self, name):
        raise NotImplementedError

    def rename_file(self, frm, to, safe=False):
        """Renames a file in this storage.

        :param frm: The current name of the file.
        :param to: The new name for the file.
        :param safe: if True, raise an exception if a file with the new name
            already exists.
        """
        raise NotImplementedError

    def close(self):
        """Closes any resources opened by this storage object."""
        pass


class FileStorage(Storage):
    """Storage object that stores the corpus as files in a directory on disk.

    The object does not check if the directory exists at initialization.
    Call :meth:`FileStorage.create` to make sure it exists.

    Args:
        path (str): A path to a directory.
        readonly (bool, optional): If ``True``, the object will raise an
            exception if you attempt to create, rename or delete a file.
    """

    def __init__(self, path, readonly=False):
        self.folder = path
        self.readonly = readonly

    def __repr__(self):
        return f"{self.__class__.__name__}({self.folder!r})"

    def create(self):
        """Creates this storage object's directory path using ``os.makedirs``
        if it doesn't already exist.

        :raises OSError: if the directory can't be created, or the path
            exists but isn't a directory.
        :return: this storage object.
        """

        dirpath = os.path.abspath(self.folder)
        try:
            os.makedirs(dirpath)
        except OSError as e:
            # If we get an error because the path already exists, ignore it
            if e.errno != errno.EEXIST:
                raise

        # Raise an exception if the given path is not a directory
        if not os.path.isdir(dirpath):
            e = OSError(f"{dirpath!r} is not a directory")
            e.errno = errno.ENOTDIR
            raise e

        return self

    def destroy(self):
        """Removes any files in this storage object and then removes the
        storage object's directory.
        """
        self.clean()
        try:
            os.rmdir(self.folder)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise

    def create_file(self, name, mode="wb", **kwargs):
        """Creates a file with the given name in this storage.

        :param name: The name for the new file.
        :param mode: The mode flags with which to open the file.
        :raises ReadOnlyError: If the storage is in read-only mode.
        :return: A :class:`hashsplit.filedb.structfile.StructFile`.
        """
        if self.readonly:
            raise ReadOnlyError

        fileobj = open(self._fpath(name), mode)
        return StructFile(fileobj, name=name, **kwargs)

    def open_file(self, name, **kwargs):
        """Opens an existing file in this storage for reading.

        :raises FileNotFoundError: If the specified file does not exist.
        :return: A :class:`hashsplit.filedb.structfile.StructFile`.
        """
        return StructFile(open(self._fpath(name), "rb"), name=name, **kwargs)

    def _fpath(self, fname):
        return os.path.abspath(os.path.join(self.folder, fname))

    def clean(self, ignore=False):
        """Removes all files in the storage directory.

        Args:
            ignore (bool, optional): If True, any OSError raised during file
                removal is ignored.
        """
        if self.readonly:
            raise ReadOnlyError

        path = self.folder
        for fname in self.list():
            try:
                os.remove(os.path.join(path, fname))
            except OSError:
                if not ignore:
                    raise

    def list(self):
        try:
            files = os.listdir(self.folder)
        except OSError:
            files = []

        return files

    def file_exists(self, name):
        return os.path.exists(self._fpath(name))

    def delete_file(self, name):
        if self.readonly:
            raise ReadOnlyError

        os.remove(self._fpath(name))

    def rename_file(self, oldname, newname, safe=False):
        if self.readonly:
            raise ReadOnlyError

        if os.path.exists(self._fpath(newname)):
            if safe:
                raise NameError(f"File {newname!r} exists")
            else:
                os.remove(self._fpath(newname))
        os.rename(self._fpath(oldname), self._fpath(newname))


class RamStorage(Storage):
    """Storage object that keeps the corpus in memory. Suitable for small
    corpora and for testing.
    """

    def __init__(self):
        self.files = {}
        self.folder = ""

    def __repr__(self):
        return f"{self.__class__.__name__}()"

    def destroy(self):
        del self.files

    def list(self):
        return list(self.files.keys())

    def clean(self):
        self.files = {}

    def file_exists(self, name):
        return name in self.files

    def delete_file(self, name):
        if name not in self.files:
            raise NameError(name)
        del self.files[name]

    def rename_file(self, name, newname, safe=False):
        if name not in self.files:
            raise NameError(name)
        if safe and newname in self.files:
            raise NameError(f"File {newname!r} exists")

        content = self.files[name]
        del self.files[name]
        self.files[newname] = content

    def create_file(self, name, **kwargs):
        """Creates a file in memory. The content becomes visible to
        :meth:`open_file` when the returned file is closed.
        """

        def onclose_fn(sfile):
            self.files[name] = sfile.file.getvalue()

        return StructFile(BytesIO(), name=name, onclose=onclose_fn)

    def open_file(self, name, **kwargs):
        if name not in self.files:
            raise NameError(name)
        return BufferFile(self.files[name], name=name, **kwargs)
