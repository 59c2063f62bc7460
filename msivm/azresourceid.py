#
# msivm/azresourceid.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Azure resource IDs in object form.

Each class declares LAYOUT, the '/'-separated tokens of its text form.
A token in braces is a field; any other token is a literal that parsing
matches without regard to case. Subscription IDs are canonized to
lower-case. Other fields keep their case, and IDs compare case-insensitively.
'''
import re
import uuid

from msivm.base_defaults import EXC_VALUE_DEFAULT
from msivm.util import re_abs

RE_RESOURCE_GROUP_TXT = r'([a-zA-Z0-9][a-zA-Z0-9\-\._\(\)]{0,88}[a-zA-Z0-9\-_\(\)]{0,1})'
RE_RESOURCE_GROUP_ABS = re.compile(re_abs(RE_RESOURCE_GROUP_TXT))

RE_STORAGE_ACCOUNT_TXT = r'([a-z0-9]{3,24})'
RE_STORAGE_ACCOUNT_ABS = re.compile(re_abs(RE_STORAGE_ACCOUNT_TXT))

EXC_DESC_DEFAULT = 'resource_id'

def _layout_field(tok):
    '''
    Return the field name for a LAYOUT token, or None for a literal
    '''
    if tok.startswith('{') and tok.endswith('}'):
        return tok[1:-1]
    return None

def _subscription_id_check(name, value, exc_value):
    try:
        return str(uuid.UUID(value)).lower()
    except ValueError as exc:
        raise exc_value("%s %r is not a UUID" % (name, value)) from exc

def _resource_group_name_check(name, value, exc_value):
    if not RE_RESOURCE_GROUP_ABS.search(value):
        raise exc_value("invalid %s %r" % (name, value))
    return value

def _nonempty_check(name, value, exc_value):
    if not value:
        raise exc_value("invalid %s (empty)" % name)
    return value

# field name -> check(name, value, exc_value) returning the stored form
FIELD_CHECKS = {'subscription_id' : _subscription_id_check,
                'resource_group_name' : _resource_group_name_check,
               }

class AzAnyResourceId():
    '''
    Base class for resource IDs. FIELDS is derived from LAYOUT and
    is also the order of constructor arguments.
    NORMALIZE_FIELDS are fields whose case from_text() takes from
    caller-provided values.
    '''
    LAYOUT = ('',)
    NORMALIZE_FIELDS = ()
    FIELDS = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.FIELDS = tuple(name for name in map(_layout_field, cls.LAYOUT) if name)

    def __init__(self, *args, exc_value=EXC_VALUE_DEFAULT):
        if len(args) != len(self.FIELDS):
            raise TypeError("%s() takes %d positional arguments but %d were given" % (type(self).__name__, len(self.FIELDS), len(args)))
        self._values = dict()
        for name, value in zip(self.FIELDS, args):
            self.field_set(name, value, exc_value=exc_value)

    def __getattr__(self, name):
        values = self.__dict__.get('_values', None)
        if (values is not None) and (name in values):
            return values[name]
        raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name))

    def field_set(self, name, value, exc_value=EXC_VALUE_DEFAULT):
        '''
        Validate value and store it as field name
        '''
        if name not in self.FIELDS:
            raise AttributeError("%s has no field %r" % (type(self).__name__, name))
        if not isinstance(value, str):
            raise TypeError("%s must be str, not %s" % (name, type(value).__name__))
        check = FIELD_CHECKS.get(name, _nonempty_check)
        self._values[name] = check(name, value, exc_value)

    def __repr__(self):
        args = ', '.join("%s=%r" % (name, self._values[name]) for name in self.FIELDS)
        return "%s(%s)" % (type(self).__name__, args)

    def __str__(self):
        return '/'.join(tok.format(**self._values) for tok in self.LAYOUT)

    def _key(self):
        return str(self).lower()

    def __eq__(self, other):
        if not isinstance(other, AzAnyResourceId):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    @classmethod
    def build(cls, *args, values=None, exc_value=EXC_VALUE_DEFAULT):
        '''
        Construct from the fields not fixed by values, in FIELDS order.
        values holds the fixed fields, such as
        {'provider_name' : 'Microsoft.Network', 'resource_type' : 'virtualNetworks'}.
        '''
        values = dict(values or dict())
        unknown = sorted(set(values) - set(cls.FIELDS))
        if unknown:
            raise exc_value("%s: unexpected values content %s" % (cls.__name__, ','.join(unknown)))
        free = [name for name in cls.FIELDS if name not in values]
        if len(args) != len(free):
            raise TypeError("%s.build() expects %d arguments (%s) but got %d" % (cls.__name__, len(free), ', '.join(free), len(args)))
        values.update(zip(free, args))
        return cls(*[values[name] for name in cls.FIELDS], exc_value=exc_value)

    @classmethod
    def _parse(cls, text, exc_desc, exc_value):
        '''
        Return constructor args parsed from text, raising exc_value if text does not fit LAYOUT
        '''
        toks = text.split('/')
        if len(toks) != len(cls.LAYOUT):
            raise exc_value("invalid %s %r" % (exc_desc, text))
        args = list()
        for idx, (tok, want) in enumerate(zip(toks, cls.LAYOUT)):
            if _layout_field(want):
                args.append(tok)
            elif tok.lower() != want.lower():
                raise exc_value("invalid %s %r (unexpected token[%d] %r)" % (exc_desc, text, idx, tok))
        return args

    @classmethod
    def from_text(cls, text, exc_desc=EXC_DESC_DEFAULT, exc_value=EXC_VALUE_DEFAULT, **kwargs):
        '''
        Parse text as an ID of this type. kwargs are field values the
        result must match, such as provider_name='Microsoft.Compute'.
        '''
        if not isinstance(text, str):
            raise TypeError("%s.from_text(): text must be str, not %s" % (cls.__name__, type(text).__name__))
        ret = cls(*cls._parse(text, exc_desc, exc_value), exc_value=exc_value)
        ret.values_check(text, exc_value=exc_value, **kwargs)
        ret.values_normalize(**kwargs)
        return ret

    def values_check(self, text, exc_value=EXC_VALUE_DEFAULT, **kwargs):
        '''
        Raise exc_value if a value in kwargs differs from this ID.
        Empty values and names that are not fields here are skipped,
        so one set of restrictions can be applied to several types.
        '''
        for name, value in kwargs.items():
            if value and (name in self._values) and (str(value).lower() != self._values[name].lower()):
                raise exc_value("%s mismatch %r vs %r" % (name, value, text))

    def values_sanity(self, values, exc_value=EXC_VALUE_DEFAULT):
        '''
        Like values_check(), but every key must be a field
        '''
        for name, value in values.items():
            if name not in self._values:
                raise exc_value("%s has no attribute %r to check" % (type(self).__name__, name))
            if self._values[name].lower() != value.lower():
                raise exc_value("%s %r does not match %r" % (name, self._values[name], value))

    def values_normalize(self, **kwargs):
        '''
        Adopt the case of caller-provided values for NORMALIZE_FIELDS
        '''
        for name in self.NORMALIZE_FIELDS:
            if kwargs.get(name, None):
                self._values[name] = kwargs[name]

class AzSubscriptionResourceId(AzAnyResourceId):
    '''
    /subscriptions/11111111-1111-1111-1111-111111111111
    '''
    LAYOUT = ('', 'subscriptions', '{subscription_id}')

class AzSubscriptionProviderResourceId(AzAnyResourceId):
    '''
    Subscription-scoped provider resource, such as a role definition:
    /subscriptions/11111111-1111-1111-1111-111111111111/providers/Microsoft.Authorization/roleDefinitions/b24988ac-6180-42a0-ab88-20f7382dd24c
    '''
    LAYOUT = AzSubscriptionResourceId.LAYOUT + ('providers', '{provider_name}', '{resource_type}', '{resource_name}')
    NORMALIZE_FIELDS = ('provider_name', 'resource_type')

class AzRGResourceId(AzAnyResourceId):
    '''
    /subscriptions/11111111-1111-1111-1111-111111111111/resourceGroups/some-rg
    '''
    LAYOUT = AzSubscriptionResourceId.LAYOUT + ('resourceGroups', '{resource_group_name}')

class AzResourceId(AzAnyResourceId):
    '''
    Resource in a resource group:
    /subscriptions/11111111-1111-1111-1111-111111111111/resourceGroups/some-rg/providers/Microsoft.Compute/virtualMachines/some-vm
    '''
    LAYOUT = AzRGResourceId.LAYOUT + ('providers', '{provider_name}', '{resource_type}', '{resource_name}')
    NORMALIZE_FIELDS = ('provider_name', 'resource_type')

class AzSubResourceId(AzResourceId):
    '''
    Child of a resource, such as a subnet or a VM extension:
    /subscriptions/11111111-1111-1111-1111-111111111111/resourceGroups/some-rg/providers/Microsoft.Compute/virtualMachines/some-vm/extensions/some-extension
    '''
    LAYOUT = AzResourceId.LAYOUT + ('{subresource_type}', '{subresource_name}')
    NORMALIZE_FIELDS = AzResourceId.NORMALIZE_FIELDS + ('subresource_type',)


def azrid_normalize(resource_id, azrid_type, azrid_values, exc_value=EXC_VALUE_DEFAULT):
    '''
    Return resource_id (text or an ID object) as an azrid_type
    whose fields match azrid_values.
    '''
    assert issubclass(azrid_type, AzAnyResourceId)
    assert exc_value
    if isinstance(resource_id, AzAnyResourceId):
        if type(resource_id) is not azrid_type: # pylint: disable=unidiomatic-typecheck
            raise exc_value("resource_id type %s is not %s" % (type(resource_id).__name__, azrid_type.__name__))
        resource_id.values_sanity(azrid_values, exc_value=exc_value)
        return resource_id
    return azrid_type.from_text(resource_id, exc_value=exc_value, **azrid_values)
