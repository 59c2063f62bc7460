#
# msivm/exceptions.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
msivm exception hierarchy.
'''

class ApplicationException(Exception):
    '''
    Root of msivm-specific errors
    '''

class ApplicationExit(ApplicationException):
    '''
    Request to exit with code. main_with_args() turns this into
    SystemExit. Deriving from Exception rather than SystemExit lets
    generic handlers see it.
    '''
    def __init__(self, code):
        super().__init__(str(code))
        self.code = code

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.code)

    def __str__(self):
        return str(self.code)

class ResourceGroupMayNotBeDeleted(ApplicationExit):
    '''
    Naming policy, resource_groups_keep, or a keep tag protects the resource group
    '''

class ConfigError(ApplicationException):
    '''
    Bad config file content
    '''

class ConfigNotFoundError(ApplicationExit):
    '''
    The config file was named explicitly and does not exist
    '''

class ProvisioningError(ApplicationException):
    '''
    Workflow failure detected by msivm rather than reported by Azure.
    step is the ProvisionStep in progress, if known.
    '''
    def __init__(self, txt, step=None):
        super().__init__(txt)
        self.txt = txt
        self.step = step

    def __repr__(self):
        return "%s(%r, step=%r)" % (type(self).__name__, self.txt, self.step)

    def __str__(self):
        return str(self.txt) if self.step is None else "%s: %s" % (self.step, self.txt)

class RoleNotFoundError(ProvisioningError):
    '''
    role_name has no definition at scope
    '''
    def __init__(self, role_name, scope, step=None):
        super().__init__("role not found: %r at scope %r" % (role_name, scope), step=step)
        self.role_name = role_name
        self.scope = scope

class IdentityMissingError(ProvisioningError):
    '''
    The VM reports no system-assigned identity principal
    '''

class ProvisioningOrderError(ProvisioningError):
    '''
    A step ran out of order
    '''

class TeardownNotConfirmed(ProvisioningError):
    '''
    Resource group deletion was declined at the prompt
    '''
