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


"""Classes and functions for turning a piece of text into a stream of
"tokens" (usually words) with positions. The corpus writer runs every string
field of a document through an analyzer to build the term index.

Tokenizers and filters compose with the ``|`` operator::

    ana = RegexTokenizer() | LowercaseFilter()
    [t.text for t in ana("Alfa BRAVO charlie")]
    # ["alfa", "bravo", "charlie"]
"""

import re

default_pattern = re.compile(r"\w+(\.?\w+)*", re.UNICODE)


class CompositionError(Exception):
    pass


class Token:
    """
    Represents a "token" (usually a word) extracted from the source text being
    indexed.

    Because object instantiation in Python is slow, tokenizers create ONE
    SINGLE Token object and YIELD IT OVER AND OVER, changing the attributes
    each time. Consumers of tokens must never hold onto the token object
    between loop iterations; save the attributes instead.
    """

    def __init__(self, positions=False, **kwargs):
        """
        :param positions: Whether tokens should have the token position in the
            'pos' attribute.
        :param kwargs: Additional keyword arguments to be stored as attributes
            of the Token object.
        """
        self.positions = positions
        self.__dict__.update(kwargs)

    def __repr__(self):
        parms = ", ".join(f"{name}={value!r}" for name, value in self.__dict__.items())
        return f"{self.__class__.__name__}({parms})"


# Composition support


class Composable:
    """Base class for objects that can be chained into an analyzer with the
    ``|`` operator.
    """

    def __or__(self, other):
        if not isinstance(other, Composable):
            raise TypeError(f"{self!r} is not composable with {other!r}")
        return CompositeAnalyzer(self, other)

    def __repr__(self):
        attrs = ""
        if self.__dict__:
            attrs = ", ".join(
                f"{key}={value!r}" for key, value in self.__dict__.items()
            )
        return self.__class__.__name__ + f"({attrs})"


class Tokenizer(Composable):
    """Base class for tokenizers."""

    def __eq__(self, other):
        return other and self.__class__ is other.__class__


class RegexTokenizer(Tokenizer):
    """
    Uses a regular expression to extract tokens from text.

    >>> rex = RegexTokenizer()
    >>> [token.text for token in rex("hi there 3.141 big-time under_score")]
    ['hi', 'there', '3.141', 'big', 'time', 'under_score']

    Args:
        expression (Union[str, Pattern]): A regular expression object or
            string. Each match of the expression equals a token. Group 0 (the
            entire matched text) is used as the text of the token.
    """

    def __init__(self, expression=default_pattern):
        if isinstance(expression, str):
            expression = re.compile(expression, re.UNICODE)
        self.expression = expression

    def __eq__(self, other):
        if self.__class__ is other.__class__:
            if self.expression.pattern == other.expression.pattern:
                return True
        return False

    def __call__(self, value, positions=False, start_pos=0, **kwargs):
        """
        Args:
            value (str): The unicode string to tokenize.
            positions (bool): Whether to record token positions in the token.
            start_pos (int): The position number of the first token.

        Yields:
            Token: The generated tokens.
        """
        assert isinstance(value, str), f"{value!r} is not unicode"

        t = Token(positions, **kwargs)
        for pos, match in enumerate(self.expression.finditer(value)):
            t.text = match.group(0)
            if positions:
                t.pos = start_pos + pos
            yield t


class Filter(Composable):
    """Base class for Filter objects. A Filter subclass must implement a
    filter() method that takes a single argument, which is an iterator of
    Token objects, and yield a series of Token objects in return.
    """

    def __eq__(self, other):
        return (
            other
            and self.__class__ is other.__class__
            and self.__dict__ == other.__dict__
        )

    def __call__(self, tokens):
        raise NotImplementedError


class LowercaseFilter(Filter):
    """A filter that uses str.lower() to lowercase token text.

    >>> rext = RegexTokenizer()
    >>> stream = rext("This is a TEST")
    >>> [token.text for token in LowercaseFilter()(stream)]
    ['this', 'is', 'a', 'test']
    """

    def __call__(self, tokens):
        for t in tokens:
            t.text = t.text.lower()
            yield t


class CompositeAnalyzer(Composable):
    """A tokenizer followed by any number of filters."""

    def __init__(self, *composables):
        self.items = []

        for comp in composables:
            if isinstance(comp, CompositeAnalyzer):
                self.items.extend(comp.items)
            else:
                self.items.append(comp)

        for item in self.items[1:]:
            if isinstance(item, Tokenizer):
                raise CompositionError(
                    f"Only one tokenizer allowed at the start of the analyzer: {self.items!r}"
                )

    def __repr__(self):
        return "{}({})".format(
            self.__class__.__name__,
            ", ".join(repr(item) for item in self.items),
        )

    def __eq__(self, other):
        return (
            other
            and self.__class__ is other.__class__
            and self.items == other.items
        )

    def __call__(self, value, **kwargs):
        items = self.items
        gen = items[0](value, **kwargs)
        for item in items[1:]:
            gen = item(gen)
        return gen


def simple_analyzer(expression=default_pattern):
    """Composes a RegexTokenizer with a LowercaseFilter. This is the analyzer
    the corpus writer uses unless it is given another one.

    >>> ana = simple_analyzer()
    >>> [token.text for token in ana("Hello there, this is a TEST")]
    ['hello', 'there', 'this', 'is', 'a', 'test']

    :param expression: The regular expression pattern to use to extract
        tokens.
    """

    return RegexTokenizer(expression=expression) | LowercaseFilter()
