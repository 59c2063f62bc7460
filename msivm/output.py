#
# msivm/output.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Redaction of secrets from stdout and stderr.

capture() replaces sys.stdout and sys.stderr with TextIOWrapperFilter
objects. Every string written through them has each registered secret
replaced with REDACTED:<key>. Secrets are registered with output_redact();
msivm registers the VM admin password and the service principal secret.
rawwrite() is the only way to print a secret on purpose.
'''
import collections
import io
import sys
import threading

from msivm.util import getframename

_capture_lock = threading.Lock()

# {'stdout' : original stream} for each stream currently wrapped
_captured = dict()

def capture():
    '''
    Wrap sys.stdout and sys.stderr with TextIOWrapperFilter.
    Idempotent and thread-safe.
    '''
    with _capture_lock:
        for name in ('stderr', 'stdout'):
            if name not in _captured:
                stream = getattr(sys, name)
                _captured[name] = stream
                setattr(sys, name, TextIOWrapperFilter(stream))

def uncapture_for_pytest():
    '''
    Restore the streams replaced by capture().
    pytest swaps sys.stdout/sys.stderr per test and breaks if
    a wrapper outlives the stream it wraps.
    '''
    with _capture_lock:
        for name, stream in _captured.items():
            setattr(sys, name, stream)
        _captured.clear()

class Redaction(collections.namedtuple('Redaction', ['key', 'value'])):
    '''
    One secret value and the key shown in its place.
    Longer values sort first so that a secret containing
    another secret is replaced whole.
    '''
    __slots__ = ()

    def __repr__(self):
        return "%s(%r, ...)" % (type(self).__name__, self.key)

    def sort_key(self):
        '''
        Key for ordering redactions
        '''
        return (-len(self.value), self.value, self.key)

class TextIOWrapperFilter(io.TextIOWrapper):
    '''
    Stand-in for a text stream. write() and writelines() apply the
    registered redactions; every other attribute belongs to the wrapped
    stream. Redactions are shared by all instances.
    '''
    def __init__(self, wrapped_obj): # pylint: disable=super-init-not-called
        assert not isinstance(wrapped_obj, TextIOWrapperFilter)
        self._msivm_wrapped = wrapped_obj
        self.msivm_rawwrite = wrapped_obj.write

    def __del__(self):
        # io.IOBase.__del__ would close the wrapped stream
        pass

    # Attributes that live on the filter rather than on the wrapped stream
    MSIVM_PRIVATE_ATTRS = frozenset(('MSIVM_PRIVATE_ATTRS',
                                     '_msivm_wrapped',
                                     '_redact_lock',
                                     '_redactions',
                                     'add_redaction',
                                     'msivm_rawwrite',
                                     'msivm_wrapped',
                                     'redact',
                                     'redactions_clear',
                                     'write',
                                     'writelines',
                                    ))

    _redact_lock = threading.Lock()
    _redactions = list()

    def __getattribute__(self, name):
        if name in type(self).MSIVM_PRIVATE_ATTRS:
            return super().__getattribute__(name)
        return getattr(super().__getattribute__('_msivm_wrapped'), name)

    def __setattr__(self, name, value):
        if name in type(self).MSIVM_PRIVATE_ATTRS:
            super().__setattr__(name, value)
        else:
            setattr(self._msivm_wrapped, name, value)

    def __delattr__(self, name):
        if name in type(self).MSIVM_PRIVATE_ATTRS:
            super().__delattr__(name)
        else:
            delattr(self._msivm_wrapped, name)

    @property
    def msivm_wrapped(self):
        '''
        Getter
        '''
        return self._msivm_wrapped

    @classmethod
    def add_redaction(cls, key, value):
        '''
        Replace value with REDACTED:key in subsequent writes
        '''
        if not (isinstance(key, str) and key):
            raise ValueError("invalid redaction key %r" % key)
        if not isinstance(value, str):
            raise TypeError("redaction value must be str, not %s" % type(value).__name__)
        redaction = Redaction(key, value)
        with cls._redact_lock:
            if redaction not in cls._redactions:
                cls._redactions.append(redaction)
                cls._redactions.sort(key=Redaction.sort_key)

    @classmethod
    def redactions_clear(cls):
        '''
        Forget every redaction
        '''
        with cls._redact_lock:
            cls._redactions.clear()

    @classmethod
    def redact(cls, txt):
        '''
        Return txt with every redaction applied
        '''
        with cls._redact_lock:
            for redaction in cls._redactions:
                txt = txt.replace(redaction.value, 'REDACTED:' + redaction.key)
        return txt

    def write(self, b):
        if not isinstance(b, str):
            raise TypeError("%s() argument must be str, not %s" % (getframename(0), type(b).__name__))
        return self.msivm_rawwrite(self.redact(b))

    def writelines(self, lines):
        self.write(''.join(lines))

def output_redact(key, value):
    '''
    Register value (a secret) for redaction on stdout/stderr.
    key appears in its place, as REDACTED:key. Empty values are ignored.
    '''
    assert isinstance(value, str)
    if value:
        TextIOWrapperFilter.add_redaction(key, value)

def redact(txt):
    '''
    Return txt with all registered redactions applied
    '''
    return TextIOWrapperFilter.redact(txt)

def rawwrite(txt, stream=None):
    '''
    Write txt to stream (default sys.stdout) without redaction.
    '''
    stream = stream if stream is not None else sys.stdout
    if isinstance(stream, TextIOWrapperFilter):
        stream.msivm_rawwrite(txt)
    else:
        stream.write(txt)
    stream.flush()
