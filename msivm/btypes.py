#
# msivm/btypes.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Basic types. Imports nothing from msivm except base_defaults.
'''
import enum

from msivm.base_defaults import EXC_VALUE_DEFAULT

class EnumMixin():
    '''
    Extra operations for enum.Enum subclasses.
    Members compare in declaration order; the other operand
    may be a member or a value.
    '''
    @classmethod
    def values(cls, sort=True):
        '''
        Return the member values, sorted unless sort is false
        '''
        ret = [x.value for x in cls]
        return sorted(ret) if sort else ret

    @classmethod
    def coerce(cls, value, exc_value=EXC_VALUE_DEFAULT, prefix=''):
        '''
        Return value as a member, raising exc_value with the valid choices if it is not one
        '''
        try:
            return cls(value)
        except ValueError as exc:
            txt = "%r is not one of %s" % (value, ', '.join(str(x) for x in cls.values()))
            raise exc_value(f"{prefix}: {txt}" if prefix else txt) from exc

    def _position(self, other=None):
        '''
        Declaration index of other (a member or value), or of self
        '''
        member = self if other is None else type(self)(other)
        return list(type(self)).index(member)

    def __lt__(self, other):
        return self._position() < self._position(other)

    def __le__(self, other):
        return self._position() <= self._position(other)

    def __gt__(self, other):
        return self._position() > self._position(other)

    def __ge__(self, other):
        return self._position() >= self._position(other)

class ReadOnlyDict(dict):
    '''
    dict that raises TypeError on modification
    '''
    def _readonly(self, *args, **kwargs):
        raise TypeError("%s is read-only" % type(self).__name__)

    __delitem__ = _readonly
    __setitem__ = _readonly
    clear = _readonly
    pop = _readonly
    popitem = _readonly
    setdefault = _readonly
    update = _readonly

class AzCred(EnumMixin, enum.Enum):
    '''
    Where Manager gets Azure credentials.
    SERVICE_PRINCIPAL: AZURE_CLIENT_ID/AZURE_CLIENT_SECRET with the tenant_id
    LOGIN: the az login token cache
    '''
    LOGIN = 'login'
    SERVICE_PRINCIPAL = 'service-principal'

class LogTo(EnumMixin, enum.Enum):
    '''
    Stream for Application logging
    '''
    STDERR = 'stderr'
    STDOUT = 'stdout'

class ProvisionStep(EnumMixin, enum.Enum):
    '''
    MSI VM workflow steps, declared in execution order
    '''
    RESOURCE_GROUP = 'resource_group'
    STORAGE_ACCOUNT = 'storage_account'
    VNET = 'vnet'
    PUBLIC_IP = 'public_ip'
    NIC = 'nic'
    VM = 'vm'
    EXTENSION = 'extension'
    ROLE_LOOKUP = 'role_lookup'
    ROLE_ASSIGNMENT = 'role_assignment'
    RESOURCE_LIST = 'resource_list'
    TEMPLATE_EXPORT = 'template_export'
    TEARDOWN = 'teardown'

    @classmethod
    def sequence(cls):
        '''
        Return every step in execution order
        '''
        return list(cls)

    def predecessor(self):
        '''
        Return the step that must complete immediately before this one (None for the first)
        '''
        idx = self._position()
        return self.sequence()[idx-1] if idx else None

    def __str__(self):
        return self.value

class StorageAccountType(EnumMixin, enum.Enum):
    '''
    Storage account SKU names as Azure spells them
    '''
    PREMIUM_LRS = 'Premium_LRS'
    PREMIUM_ZRS = 'Premium_ZRS'
    STANDARD_GRS = 'Standard_GRS'
    STANDARD_LRS = 'Standard_LRS'
