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


"""Command line interface::

    hashsplit --out OUTDIR --num N [--id-field FIELD] INPUT [INPUT ...]

Splits the input corpora into N corpora in ``OUTDIR/part-0`` ..
``OUTDIR/part-<N-1>``, putting each document in the part given by the MD5
hash of its identifier modulo N.
"""

import sys
from optparse import OptionParser

from loguru import logger

from hashsplit import versionstring
from hashsplit.corpus import CorpusError
from hashsplit.filedb.filestore import StorageError
from hashsplit.progress import LogProgress, ProgressBar
from hashsplit.sharding import DEFAULT_ID_FIELD, SplitError
from hashsplit.splitting import split_corpus

#: Exit status for failed splits; usage errors exit with 2 (optparse)
EXIT_FAILURE = 1


def _parser():
    """
    Create an OptionParser object with the options of the ``hashsplit``
    command.

    Options:
    - -o, --out: Directory to contain the output parts. Required.
    - -n, --num: Number of parts to produce, at least 2. Required.
    - -i, --id-field: Unique ID field name. Default is "id".
    - -p, --procs: Number of shard passes to run at the same time. Default is 1.
    - -q, --quiet: Only log warnings and errors, and don't draw progress bars.
    - -v, --verbose: Log debug messages.
    """
    p = OptionParser(
        usage="%prog --out OUTDIR --num N [--id-field FIELD] INPUT [INPUT ...]",
        version=f"%prog {versionstring()}",
        description="Split corpora into N parts by the MD5 hash of each "
        "document's unique ID.",
    )
    p.add_option(
        "-o",
        "--out",
        dest="outdir",
        metavar="DIRNAME",
        help="Path to output directory to contain the parts.",
        default=None,
    )
    p.add_option(
        "-n",
        "--num",
        dest="numshards",
        type="int",
        metavar="N",
        help="Number of parts to produce.",
        default=None,
    )
    p.add_option(
        "-i",
        "--id-field",
        dest="idfield",
        metavar="FIELD",
        help=f'Unique ID field name ("{DEFAULT_ID_FIELD}" by default).',
        default=DEFAULT_ID_FIELD,
    )
    p.add_option(
        "-p",
        "--procs",
        dest="procs",
        type="int",
        metavar="N",
        help="Number of parts to write at the same time.",
        default=1,
    )
    p.add_option(
        "-q",
        "--quiet",
        dest="verbosity",
        action="store_const",
        const=0,
        help="Only report warnings and errors.",
        default=1,
    )
    p.add_option(
        "-v",
        "--verbose",
        dest="verbosity",
        action="store_const",
        const=2,
        help="Report debugging messages.",
    )
    return p


def configure_logging(verbosity, sink=None):
    """Enables the library's log messages and sends them to ``sink``
    (standard error by default).

    :param verbosity: 0 for warnings and errors only, 1 for progress
        messages, 2 for debug messages.
    """
    level = {0: "WARNING", 1: "INFO"}.get(verbosity, "DEBUG")
    logger.remove()
    logger.add(sink or sys.stderr, level=level, format="{message}")
    logger.enable("hashsplit")


def main(args=None):
    """Runs the command line tool and returns the exit status."""
    p = _parser()
    options, inputs = p.parse_args(args)

    if options.outdir is None:
        p.error("Required argument missing: --out OUTDIR")
    if options.numshards is None:
        p.error("Required argument missing: --num N")
    if not inputs:
        p.error("No input corpora given")

    configure_logging(options.verbosity)

    if options.verbosity == 0:
        progress = None
    elif options.verbosity == 2 or not sys.stderr.isatty():
        progress = LogProgress()
    else:
        progress = ProgressBar()

    try:
        counts = split_corpus(
            inputs,
            options.outdir,
            options.numshards,
            idfield=options.idfield,
            progress=progress,
            procs=options.procs,
        )
    except (SplitError, CorpusError, StorageError, OSError) as e:
        logger.error("{}", e)
        return EXIT_FAILURE

    logger.info(
        "Split {} document(s) into {} parts: {}",
        sum(counts),
        len(counts),
        ", ".join(str(c) for c in counts),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
