#
# msivm/clouds.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Azure cloud lookup by name, plus the endpoint strings msivm derives
from a msrestazure.azure_cloud.Cloud.
'''
import msrestazure.azure_cloud

import msivm.base_defaults

def _known_clouds():
    ret = dict()
    for value in vars(msrestazure.azure_cloud).values():
        if isinstance(value, msrestazure.azure_cloud.Cloud):
            ret[value.name] = value
    # az cli spells the public cloud both ways
    ret.setdefault('AzurePublicCloud', msrestazure.azure_cloud.AZURE_PUBLIC_CLOUD)
    return ret

_CLOUDS = _known_clouds()

def cloud_names():
    '''
    Sorted list of cloud names accepted by cloud_get()
    '''
    return sorted(_CLOUDS)

def cloud_get(name, exc_value=msivm.base_defaults.EXC_VALUE_DEFAULT):
    '''
    Return the Cloud called name (any case)
    '''
    for key, cloud in _CLOUDS.items():
        if key.lower() == name.lower():
            return cloud
    raise exc_value("unknown cloud %r (choose from %s)" % (name, ', '.join(cloud_names())))

def cloud_authority(cloud):
    '''
    AAD authority host for azure.identity credentials
    '''
    return cloud.endpoints.active_directory.rstrip('/')

def cloud_arm_scopes(cloud):
    '''
    credential_scopes for azure-mgmt clients
    '''
    return [cloud.endpoints.resource_manager.rstrip('/') + '/.default']

def cloud_blob_endpoint(cloud, storage_account_name):
    '''
    Blob endpoint URL for storage_account_name when the account does not report one
    '''
    return "https://%s.blob.%s/" % (storage_account_name, cloud.suffixes.storage_endpoint)
