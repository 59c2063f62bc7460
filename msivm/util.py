#
# msivm/util.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Small helpers shared across msivm: argparse extensions, caller names
for log messages, dumping SDK models, and value normalization.
'''
import argparse
import datetime
import enum
import inspect
import logging
import os
import pprint
import re
import sys
import time
import uuid

from msivm.base_defaults import (EXC_VALUE_DEFAULT,
                                 PF,
                                )

def re_abs(txt):
    '''
    Anchor regexp text at both ends
    '''
    return '^' + txt + '$'

RE_UUID_ABS = re.compile(re_abs(r'([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})'))

class ArgExplicit(argparse.Action):
    '''
    argparse action that stores the value and also records
    the destination in namespace.args_explicit, so that an
    application can tell a given option from a defaulted one.
    '''
    def __call__(self, parser, namespace, value, option_string=None):
        setattr(namespace, self.dest, value)
        explicit = getattr(namespace, 'args_explicit', None)
        if explicit is None:
            namespace.args_explicit = {self.dest}
        else:
            explicit.add(self.dest)

class ArgumentParser(argparse.ArgumentParser):
    '''
    argparse.ArgumentParser whose argument groups can be looked up by title
    '''
    def get_argument_group(self, group_name, *args, **kwargs):
        '''
        Return the argument group titled group_name, adding it if needed
        '''
        for group in self._action_groups:
            if group.title == group_name:
                return group
        return self.add_argument_group(group_name, *args, **kwargs)

def getframename(idx):
    '''
    Name of the function idx frames above the caller (0 = the caller)
    '''
    return sys._getframe(idx+1).f_code.co_name # pylint: disable=protected-access

def getframe(idx):
    '''
    "function:line" for the frame idx above the caller (0 = the caller)
    '''
    f = sys._getframe(idx+1) # pylint: disable=protected-access
    return "%s:%s" % (f.f_code.co_name, f.f_lineno)

# SDK model attributes that carry nothing useful for a human reader
EXPAND_ITEM_SKIP_KEYS = ('additional_properties',)

_EXPAND_ITEM_MAX_DEPTH = 100

def expand_item(item, expand_enum=False, skip_private=True):
    '''
    Turn item into plain dicts/lists/scalars for printing.
    Azure SDK models become dicts of their attributes.
    expand_enum: replace enum members with their values
    skip_private: omit attributes named with a leading '_'
    '''
    return _expand_item(item, 0, frozenset(), expand_enum, skip_private)

def _expand_item(item, depth, seen, expand_enum, skip_private):
    '''
    Recursive body of expand_item(). seen holds the ids of the
    containers above this one so that cycles terminate.
    '''
    if (item is None) or isinstance(item, (bool, bytes, datetime.datetime, float, int, str)):
        return item
    if isinstance(item, enum.Enum):
        return item.value if expand_enum else item
    if isinstance(item, logging.Logger) or inspect.isclass(item) or inspect.isgenerator(item) \
      or inspect.ismodule(item) or inspect.isroutine(item):
        return repr(item)
    if id(item) in seen:
        return "SEEN %r" % item
    if depth >= _EXPAND_ITEM_MAX_DEPTH:
        return item
    seen = seen | {id(item)}

    def recurse(x):
        return _expand_item(x, depth+1, seen, expand_enum, skip_private)

    if isinstance(item, (list, set, frozenset)):
        return [recurse(x) for x in item]
    if isinstance(item, tuple):
        return tuple(recurse(x) for x in item)
    if not isinstance(item, dict):
        try:
            item = vars(item)
        except TypeError:
            return repr(item)
    ret = dict()
    for k, v in item.items():
        if isinstance(k, str) and ((skip_private and k.startswith('_')) or (k in EXPAND_ITEM_SKIP_KEYS)):
            continue
        ret[recurse(k)] = recurse(v)
    return ret

def expand_item_pformat(item, prefix=PF, expand_enum=False):
    '''
    pprint.pformat(expand_item(item)) with prefix on every line
    '''
    txt = pprint.pformat(expand_item(item, expand_enum=expand_enum))
    return '\n'.join(prefix + line for line in txt.splitlines())

_LOG_LEVEL_NAMES = {'critical' : logging.CRITICAL,
                    'error' : logging.ERROR,
                    'warning' : logging.WARNING,
                    'warn' : logging.WARNING,
                    'info' : logging.INFO,
                    'debug' : logging.DEBUG,
                   }

def log_level_normalize(log_level, exc_value=EXC_VALUE_DEFAULT) -> int:
    '''
    Return log_level (a level name in any case, a numeric string, or an int)
    as an int for logging.Logger.setLevel().
    '''
    if isinstance(log_level, bool):
        raise TypeError("invalid log_level type %s" % type(log_level))
    if isinstance(log_level, int):
        return log_level
    if not isinstance(log_level, str):
        raise TypeError("invalid log_level type %s" % type(log_level))
    txt = log_level.strip().lower()
    if txt in _LOG_LEVEL_NAMES:
        return _LOG_LEVEL_NAMES[txt]
    try:
        return int(txt)
    except ValueError as exc:
        raise exc_value("invalid log_level %r" % log_level) from exc

def elapsed(ts0, ts1=None):
    '''
    Seconds from ts0 to ts1 (default now), never negative
    '''
    return max((ts1 if ts1 is not None else time.time()) - ts0, 0.0)

def uuid_normalize(val, key='uuid', exc_value=EXC_VALUE_DEFAULT) -> str:
    '''
    Return val (str or uuid.UUID) in canonical lower-case form.
    On a bad value, raise exc_value, or return '' if exc_value is None.
    key names the value in the error.
    '''
    if isinstance(val, uuid.UUID):
        return str(val)
    if isinstance(val, str):
        try:
            return str(uuid.UUID(val.strip()))
        except ValueError as exc:
            if exc_value:
                raise exc_value("invalid %s %r" % (key, val)) from exc
            return ''
    if exc_value:
        raise exc_value("invalid %s: unexpected type %s" % (key, type(val).__name__))
    return ''

def file_contents_or_none(path):
    '''
    Return the text of the file at path (~ expanded), or None if it does not exist
    '''
    try:
        with open(os.path.expanduser(path), 'r') as f:
            return f.read()
    except FileNotFoundError:
        return None
