#
# msivm/command.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Registry that exposes decorated methods as command-line actions.

    command = Command()
    class Manager(...):
        @command.printable
        def resource_list(self, resource_group=None): ...

makes "resource_list" an action of Manager whose return value is printed.
The attribute used as the decorator is the action's kind:
    printable      call and print the result
    simple         call; the method does its own output
    wait           call with wait=True
'''
import functools

from msivm.util import expand_item_pformat

class Command():
    '''
    Action registry. Any public attribute not in RESERVED_NAMES
    is a decorator of that kind.
    '''
    RESERVED_NAMES = ('actions',
                      'handle',
                     )

    def __init__(self):
        self._items = dict() # action name -> _Item

    @property
    def actions(self):
        '''
        Getter: sorted action names
        '''
        return sorted(self._items.keys())

    @classmethod
    def _kind_valid(cls, kind):
        '''
        Return whether kind may be used as a decorator or action name
        '''
        return isinstance(kind, str) and bool(kind) and (not kind.startswith('_')) and (kind not in cls.RESERVED_NAMES)

    def __getattr__(self, kind):
        if not self._kind_valid(kind):
            raise AttributeError("'%s' object has no attribute '%s'" % (type(self).__name__, kind))
        return functools.partial(self._register, kind)

    def _register(self, kind, func):
        '''
        Record func as an action of the given kind and return func unchanged
        '''
        item = _Item(kind, func)
        if not self._kind_valid(item.name):
            raise ValueError("%r may not be used as an action name" % item.name)
        if item.name in self._items:
            raise ValueError("duplicate action %r" % item.name)
        self._items[item.name] = item
        return func

    def handle(self, name, kinds, obj, **kwargs):
        '''
        If name is registered with one of kinds (a str or an iterable),
        call it as a method of obj with kwargs and return True.
        Otherwise return False. obj must be an instance of exactly
        the class that defines the action.
        '''
        item = self._items.get(name, None)
        if item is None:
            return False
        if isinstance(kinds, str):
            kinds = (kinds,)
        if item.kind not in kinds:
            return False
        if type(obj) is not item.owner(): # pylint: disable=unidiomatic-typecheck
            return False
        ret = item.func(obj, **kwargs)
        if item.kind == 'printable':
            self.print_result(ret)
        return True

    @staticmethod
    def print_result(item):
        '''
        Print item; list-likes print one element at a time
        '''
        for x in (item if isinstance(item, (list, set, tuple)) else (item,)):
            txt = x if isinstance(x, str) else expand_item_pformat(x, prefix='')
            print(txt)

class _Item():
    '''
    One registered action
    '''
    def __init__(self, kind, func):
        self.kind = kind
        self.func = func
        self.name = func.__name__

    def __repr__(self):
        return "%s(%r, %r)" % (type(self).__name__, self.kind, self.func)

    def owner(self):
        '''
        Return the class whose body defines func
        '''
        qualname = self.func.__qualname__.split('.')
        if len(qualname) != 2:
            raise RuntimeError("action %s must be a method of a module-level class" % self.func.__qualname__)
        try:
            kls = self.func.__globals__[qualname[0]]
        except KeyError as exc:
            raise RuntimeError("class of action %s is not in its module namespace" % self.func.__qualname__) from exc
        if not isinstance(kls, type):
            raise RuntimeError("%s is not a class" % qualname[0])
        return kls
