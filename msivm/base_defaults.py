#
# msivm/base_defaults.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Default settings that are not loaded from any configuration.
To keep dependencies simple, use only Python built-in types here.
'''
ADMIN_PASSWORD_ENV = 'MSIVM_ADMIN_PASSWORD'
ADMIN_PASSWORD_LENGTH = 20

ADMIN_USERNAME_DEFAULT = 'notAdmin'

BLOB_ENCRYPTION_DEFAULT = True

CLOUD_DEFAULT = 'AzureCloud'

CONFIG_PATH_ENV = 'MSIVM_CONFIG'

EXC_VALUE_DEFAULT = ValueError

IMAGE_PUBLISHER = 'canonical'
IMAGE_OFFER = 'UbuntuServer'
IMAGE_SKU = '16.04.0-LTS'
IMAGE_VERSION = 'latest'

LOCATION_DEFAULT = 'westus'

# The managed identity extension listens on 127.0.0.1:MSI_PORT inside the VM.
MSI_EXTENSION_PUBLISHER = 'Microsoft.ManagedIdentity'
MSI_EXTENSION_TYPE = 'ManagedIdentityExtensionForLinux'
MSI_EXTENSION_VERSION = '1.0'
MSI_PORT = 50342

NETWORK_ADDRESS_PREFIX = '10.0.0.0/16'
NETWORK_DNS_SERVERS = ('8.8.8.8',)
SUBNET_ADDRESS_PREFIX = '10.0.0.0/24'

# Prefix for item expansion
PF = '  '

PUBKEY_FILENAME_DEFAULT = '~/.ssh/id_rsa.pub'

RESOURCE_GROUP_DEFAULT = 'azure-sample-compute-msi'

# Jinja2 templates for generated resource names.
# Rendered with vm_name and storage_suffix. Config name_templates overrides these per key.
RESOURCE_NAME_TEMPLATES = {
    'dns_label' : 'msi-vm-domain-name-label',
    'extension' : 'msiextension',
    'nic' : 'sample-msi-nic-{{ vm_name }}',
    'os_disk' : 'sample-os-disk-{{ vm_name }}',
    'public_ip' : 'sample-msi-pubip',
    'storage_account' : 'msivmstor{{ storage_suffix }}',
    'subnet' : 'msiSampleSubnet',
    'vhd_container' : 'msivmcontainer',
    'vm' : 'sample-msi-vm-{{ vm_name }}',
    'vnet' : 'sample-msi-vnet',
}

ROLE_NAME_DEFAULT = 'Contributor'

# Upper bound (inclusive) for the random suffix appended to the storage account name.
STORAGE_SUFFIX_MAX = 999

STORAGE_SKU_DEFAULT = 'Premium_LRS'

VM_NAME_DEFAULT = 'msi-vm'
VM_SIZE_DEFAULT = 'Standard_DS2_v2'
