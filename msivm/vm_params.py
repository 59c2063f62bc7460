#
# msivm/vm_params.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Build Azure SDK request models for the MSI VM resources.
These are pure functions of their arguments; nothing here talks to Azure.
'''
import secrets
import string

import azure.mgmt.authorization.models
import azure.mgmt.compute.models
import azure.mgmt.network.models
import azure.mgmt.resource.resources.models
import azure.mgmt.storage.models

import msivm.base_defaults
import msivm.clouds

def resource_group_params(location, tags=None):
    '''
    Return azure.mgmt.resource.resources.models.ResourceGroup
    '''
    return azure.mgmt.resource.resources.models.ResourceGroup(location=location, tags=tags or dict())

def storage_account_params(location, sku_name=msivm.base_defaults.STORAGE_SKU_DEFAULT, blob_encryption=msivm.base_defaults.BLOB_ENCRYPTION_DEFAULT, tags=None):
    '''
    Return azure.mgmt.storage.models.StorageAccountCreateParameters
    for a general-purpose (v1) account that can hold page-blob VHDs.
    '''
    encryption = azure.mgmt.storage.models.Encryption(services=azure.mgmt.storage.models.EncryptionServices(blob=azure.mgmt.storage.models.EncryptionService(enabled=bool(blob_encryption))),
                                                      key_source='Microsoft.Storage')
    return azure.mgmt.storage.models.StorageAccountCreateParameters(sku=azure.mgmt.storage.models.Sku(name=sku_name),
                                                                    kind='Storage',
                                                                    location=location,
                                                                    encryption=encryption,
                                                                    tags=tags or dict())

def vnet_params(location,
                subnet_name,
                address_prefix=msivm.base_defaults.NETWORK_ADDRESS_PREFIX,
                subnet_prefix=msivm.base_defaults.SUBNET_ADDRESS_PREFIX,
                dns_servers=msivm.base_defaults.NETWORK_DNS_SERVERS,
                tags=None):
    '''
    Return azure.mgmt.network.models.VirtualNetwork with exactly one subnet
    '''
    return azure.mgmt.network.models.VirtualNetwork(location=location,
                                                    address_space=azure.mgmt.network.models.AddressSpace(address_prefixes=[address_prefix]),
                                                    dhcp_options=azure.mgmt.network.models.DhcpOptions(dns_servers=list(dns_servers)),
                                                    subnets=[azure.mgmt.network.models.Subnet(name=subnet_name, address_prefix=subnet_prefix)],
                                                    tags=tags or dict())

def public_ip_params(location, dns_label, tags=None):
    '''
    Return azure.mgmt.network.models.PublicIPAddress with dynamic allocation
    '''
    return azure.mgmt.network.models.PublicIPAddress(location=location,
                                                     public_ip_allocation_method='Dynamic',
                                                     dns_settings=azure.mgmt.network.models.PublicIPAddressDnsSettings(domain_name_label=dns_label),
                                                     tags=tags or dict())

def nic_params(location, ip_config_name, subnet_id, public_ip_id, tags=None):
    '''
    Return azure.mgmt.network.models.NetworkInterface that binds
    the given subnet and public IP (both by resource ID).
    '''
    ip_config = azure.mgmt.network.models.NetworkInterfaceIPConfiguration(name=ip_config_name,
                                                                          private_ip_allocation_method='Dynamic',
                                                                          subnet=azure.mgmt.network.models.Subnet(id=str(subnet_id)),
                                                                          public_ip_address=azure.mgmt.network.models.PublicIPAddress(id=str(public_ip_id)))
    return azure.mgmt.network.models.NetworkInterface(location=location,
                                                      ip_configurations=[ip_config],
                                                      tags=tags or dict())

def vhd_uri(storage_account, container, vm_name, cloud=None):
    '''
    Return the page blob URI for the OS disk of vm_name within storage_account.
    storage_account is azure.mgmt.storage.models.StorageAccount.
    '''
    endpoints = getattr(storage_account, 'primary_endpoints', None)
    blob_endpoint = getattr(endpoints, 'blob', None) if endpoints else None
    if not blob_endpoint:
        cloud = cloud or msivm.clouds.cloud_get(msivm.base_defaults.CLOUD_DEFAULT)
        blob_endpoint = msivm.clouds.cloud_blob_endpoint(cloud, storage_account.name)
    return f"{blob_endpoint.rstrip('/')}/{container}/{vm_name}.vhd"

def authorized_keys_path(admin_username):
    '''
    Return the path within the VM where ssh keys for admin_username are placed
    '''
    return f"/home/{admin_username}/.ssh/authorized_keys"

def linux_configuration_ssh(admin_username, key_data):
    '''
    Return azure.mgmt.compute.models.LinuxConfiguration that disables
    password authentication and installs key_data for admin_username.
    '''
    pub_key = azure.mgmt.compute.models.SshPublicKey(path=authorized_keys_path(admin_username), key_data=key_data)
    return azure.mgmt.compute.models.LinuxConfiguration(disable_password_authentication=True,
                                                        ssh=azure.mgmt.compute.models.SshConfiguration(public_keys=[pub_key]))

def vm_params(location,
              computer_name,
              admin_username,
              os_disk_name,
              os_disk_vhd_uri,
              nic_id,
              admin_password=None,
              ssh_key_data=None,
              vm_size=msivm.base_defaults.VM_SIZE_DEFAULT,
              image=None,
              tags=None):
    '''
    Return azure.mgmt.compute.models.VirtualMachine with a system-assigned identity.
    With ssh_key_data, password authentication is disabled and no password is sent.
    Without it, admin_password is required and the request carries no ssh configuration.
    image is a dict of ImageReference kwargs; default is the Ubuntu image from base_defaults.
    '''
    if ssh_key_data:
        os_profile = azure.mgmt.compute.models.OSProfile(computer_name=computer_name,
                                                         admin_username=admin_username,
                                                         linux_configuration=linux_configuration_ssh(admin_username, ssh_key_data))
    else:
        if not admin_password:
            raise ValueError("admin_password is required when ssh_key_data is not provided")
        os_profile = azure.mgmt.compute.models.OSProfile(computer_name=computer_name,
                                                         admin_username=admin_username,
                                                         admin_password=admin_password)
    image = image or {'publisher' : msivm.base_defaults.IMAGE_PUBLISHER,
                      'offer' : msivm.base_defaults.IMAGE_OFFER,
                      'sku' : msivm.base_defaults.IMAGE_SKU,
                      'version' : msivm.base_defaults.IMAGE_VERSION,
                     }
    os_disk = azure.mgmt.compute.models.OSDisk(name=os_disk_name,
                                               caching='None',
                                               create_option='FromImage',
                                               vhd=azure.mgmt.compute.models.VirtualHardDisk(uri=os_disk_vhd_uri))
    storage_profile = azure.mgmt.compute.models.StorageProfile(image_reference=azure.mgmt.compute.models.ImageReference(**image),
                                                               os_disk=os_disk)
    nic_ref = azure.mgmt.compute.models.NetworkInterfaceReference(id=str(nic_id), primary=True)
    return azure.mgmt.compute.models.VirtualMachine(location=location,
                                                    os_profile=os_profile,
                                                    storage_profile=storage_profile,
                                                    hardware_profile=azure.mgmt.compute.models.HardwareProfile(vm_size=vm_size),
                                                    network_profile=azure.mgmt.compute.models.NetworkProfile(network_interfaces=[nic_ref]),
                                                    identity=azure.mgmt.compute.models.VirtualMachineIdentity(type='SystemAssigned'),
                                                    tags=tags or dict())

def vm_extension_params(location, port=msivm.base_defaults.MSI_PORT):
    '''
    Return azure.mgmt.compute.models.VirtualMachineExtension for
    the managed identity extension listening on 127.0.0.1:port.
    '''
    return azure.mgmt.compute.models.VirtualMachineExtension(location=location,
                                                             publisher=msivm.base_defaults.MSI_EXTENSION_PUBLISHER,
                                                             type_properties_type=msivm.base_defaults.MSI_EXTENSION_TYPE,
                                                             type_handler_version=msivm.base_defaults.MSI_EXTENSION_VERSION,
                                                             auto_upgrade_minor_version=True,
                                                             settings={'port' : str(port)})

def role_assignment_params(role_definition_id, principal_id):
    '''
    Return azure.mgmt.authorization.models.RoleAssignmentCreateParameters
    granting role_definition_id to the service principal principal_id.
    '''
    return azure.mgmt.authorization.models.RoleAssignmentCreateParameters(role_definition_id=str(role_definition_id),
                                                                          principal_id=principal_id,
                                                                          principal_type='ServicePrincipal')

def export_template_request():
    '''
    Return azure.mgmt.resource.resources.models.ExportTemplateRequest for every resource in the group
    '''
    return azure.mgmt.resource.resources.models.ExportTemplateRequest(resources=['*'])

# Azure requires three of these four classes in a Linux admin password
_PASSWORD_CLASSES = (string.ascii_lowercase,
                     string.ascii_uppercase,
                     string.digits,
                     '!#%+-.:=@^_',
                    )

def admin_password_generate(length=msivm.base_defaults.ADMIN_PASSWORD_LENGTH):
    '''
    Return a random admin password that satisfies Azure complexity rules.
    Every character class is represented.
    '''
    if length < len(_PASSWORD_CLASSES):
        raise ValueError("invalid password length %r" % length)
    alphabet = ''.join(_PASSWORD_CLASSES)
    chars = [secrets.choice(x) for x in _PASSWORD_CLASSES]
    chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
    # mandatory class characters land at random positions
    secrets.SystemRandom().shuffle(chars)
    return ''.join(chars)
