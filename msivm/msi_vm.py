#!/usr/bin/env python3
#
# msivm/msi_vm.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Create an Azure VM with a system-assigned managed identity, grant that
identity a role on its resource group, show what was built, and then
delete the resource group.

Credentials come from AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET
(or az login), and the subscription from AZURE_SUBSCRIPTION_ID.

Example:
  python -m msivm.msi_vm --pubkey_filename ~/.ssh/id_rsa.pub
'''
import json
import os
import sys

import msivm
from msivm.azure_tool import Manager
import msivm.base_defaults
from msivm.btypes import (ProvisionStep,
                          StorageAccountType,
                         )
import msivm.common
from msivm.exceptions import (ApplicationExit,
                              IdentityMissingError,
                              ProvisioningError,
                              ProvisioningOrderError,
                              RoleNotFoundError,
                              TeardownNotConfirmed,
                             )
import msivm.output
from msivm.output import output_redact
from msivm.resource_names import ResourceNames
from msivm.util import (ArgExplicit,
                        expand_item,
                        file_contents_or_none,
                       )
import msivm.vm_params

class MsiVmDeploy(msivm.common.ApplicationWithResourceGroup):
    '''
    Provision an Azure VM with a system-assigned managed identity, then tear it down.
    '''
    def __init__(self,
                 admin_password='',
                 admin_username='',
                 az_mgr=None,
                 blob_encryption=msivm.base_defaults.BLOB_ENCRYPTION_DEFAULT,
                 credential='',
                 input_func=None,
                 keep=False,
                 location='',
                 pubkey_filename='',
                 role_name='',
                 storage_account='',
                 storage_sku='',
                 vm_name='',
                 vm_size='',
                 yes=False,
                 **kwargs):
        super().__init__(**kwargs)
        self.location = location or msivm.scfg.get('location_default', '') or msivm.base_defaults.LOCATION_DEFAULT
        self.admin_username = admin_username or msivm.base_defaults.ADMIN_USERNAME_DEFAULT
        self.blob_encryption = bool(blob_encryption)
        self.keep = bool(keep)
        self.pubkey_filename = pubkey_filename or self.pubkey_filename_default()
        self.role_name = role_name or msivm.base_defaults.ROLE_NAME_DEFAULT
        self.storage_sku = StorageAccountType.coerce(storage_sku or msivm.base_defaults.STORAGE_SKU_DEFAULT, exc_value=self.exc_value, prefix='storage_sku')
        self.vm_size = vm_size or msivm.base_defaults.VM_SIZE_DEFAULT
        self.yes = bool(yes)
        self.input_func = input_func or input

        self._admin_password = admin_password or os.environ.get(msivm.base_defaults.ADMIN_PASSWORD_ENV, '')
        self._admin_password_generated = False
        if self._admin_password:
            output_redact('admin_password', self._admin_password)

        self.names = ResourceNames(self, vm_name or msivm.base_defaults.VM_NAME_DEFAULT, storage_account=storage_account, exc_value=self.exc_value)

        if az_mgr is None:
            az_mgr = Manager(**self.manager_kwargs(credential=credential,
                                                   location=self.location,
                                                   role_name=self.role_name,
                                                   storage_account=self.names.storage_account,
                                                   vm_name=self.names.vm))
        self.az_mgr = az_mgr

        self.steps_done = list()

        # Results of each step, in the order produced
        self.resource_group_obj = None
        self.storage_account_obj = None
        self.vnet_obj = None
        self.public_ip_obj = None
        self.nic_obj = None
        self.vm_obj = None
        self.role_definition_obj = None
        self.role_assignment_obj = None
        self.resources = None
        self.template = None

    ######################################################################
    # step sequencing

    def _step_begin(self, step):
        '''
        Raise ProvisioningOrderError unless every step before step has completed
        and step itself has not.
        '''
        step = ProvisionStep(step)
        if step in self.steps_done:
            raise ProvisioningOrderError("step already completed", step=step)
        pred = step.predecessor()
        if pred is not None and ((not self.steps_done) or (self.steps_done[-1] != pred)):
            raise ProvisioningOrderError("requires step %s to complete first" % pred, step=step)
        self.logger.debug("%s begin step %s", self.mth(), step)

    def _step_end(self, step):
        '''
        Record step as complete
        '''
        self.steps_done.append(ProvisionStep(step))

    @property
    def resource_group_name(self):
        '''
        Getter for the name of the resource group as reported by Azure.
        '''
        if self.resource_group_obj is None:
            raise ProvisioningOrderError("resource group not yet created")
        return self.resource_group_obj.name

    ######################################################################
    # output helpers

    @staticmethod
    def _fmt_value(value):
        '''
        Return value as text for print_item
        '''
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(expand_item(value, expand_enum=True), sort_keys=True, default=str)
        return str(expand_item(value, expand_enum=True))

    @classmethod
    def print_item(cls, item, prefix='\t\t'):
        '''
        Print the attributes of an SDK model object, sorted by name.
        '''
        if item is None:
            print(prefix + 'None')
        elif isinstance(item, dict):
            for k in sorted(item.keys()):
                print("%s%s: %s" % (prefix, k, cls._fmt_value(item[k])))
        else:
            d = expand_item(item)
            if isinstance(d, dict):
                for k in sorted(d.keys(), key=str):
                    print("%s%s: %s" % (prefix, k, cls._fmt_value(getattr(item, k, d[k]))))
            else:
                print(prefix + str(d))
        print("\n")

    @classmethod
    def print_group(cls, resource_group):
        '''
        Print a resource group
        '''
        print("\tname: %s" % resource_group.name)
        print("\tid: %s" % resource_group.id)
        print("\tlocation: %s" % resource_group.location)
        print("\ttags: %s" % resource_group.tags)
        print("\tproperties:")
        cls.print_item(resource_group.properties)

    ######################################################################
    # provisioning steps

    def resource_group_ensure(self):
        '''
        Create or update the resource group
        '''
        self._step_begin(ProvisionStep.RESOURCE_GROUP)
        print('Create Resource Group')
        self.resource_group_obj = self.az_mgr.resource_group_create(resource_group=self.resource_group, location=self.location)
        self.print_group(self.resource_group_obj)
        self._step_end(ProvisionStep.RESOURCE_GROUP)
        return self.resource_group_obj

    def storage_account_create(self):
        '''
        Create the storage account that holds the OS disk VHD
        '''
        self._step_begin(ProvisionStep.STORAGE_ACCOUNT)
        print("Creating a %s storage account with encryption %s named %s in resource group %s" % (self.storage_sku.value, 'on' if self.blob_encryption else 'off', self.names.storage_account, self.resource_group_name))
        parameters = msivm.vm_params.storage_account_params(self.location,
                                                            sku_name=self.storage_sku.value,
                                                            blob_encryption=self.blob_encryption,
                                                            tags=self.az_mgr.tags_get())
        self.storage_account_obj = self.az_mgr.storage_account_create(self.names.storage_account, parameters, resource_group=self.resource_group_name)
        self.print_item(self.storage_account_obj)
        self._step_end(ProvisionStep.STORAGE_ACCOUNT)
        return self.storage_account_obj

    def vnet_create(self):
        '''
        Create the virtual network and its one subnet
        '''
        self._step_begin(ProvisionStep.VNET)
        print('Creating a virtual network for the VM')
        parameters = msivm.vm_params.vnet_params(self.location, self.names.subnet, tags=self.az_mgr.tags_get())
        self.vnet_obj = self.az_mgr.vnet_create_or_update(self.names.vnet, parameters, resource_group=self.resource_group_name)
        self.print_item(self.vnet_obj)
        self._step_end(ProvisionStep.VNET)
        return self.vnet_obj

    def public_ip_create(self):
        '''
        Create the public IP address
        '''
        self._step_begin(ProvisionStep.PUBLIC_IP)
        print('Creating a public IP address for the VM')
        parameters = msivm.vm_params.public_ip_params(self.location, self.names.dns_label, tags=self.az_mgr.tags_get())
        self.public_ip_obj = self.az_mgr.public_ip_create_or_update(self.names.public_ip, parameters, resource_group=self.resource_group_name)
        self.print_item(self.public_ip_obj)
        self._step_end(ProvisionStep.PUBLIC_IP)
        return self.public_ip_obj

    def nic_create(self):
        '''
        Create the NIC that binds the subnet and the public IP
        '''
        self._step_begin(ProvisionStep.NIC)
        print("Creating a network interface for the VM %s" % self.names.vm_name)
        if not self.vnet_obj.subnets:
            raise ProvisioningError("virtual network %s has no subnets" % self.vnet_obj.name, step=ProvisionStep.NIC)
        subnet = self.vnet_obj.subnets[0]
        parameters = msivm.vm_params.nic_params(self.location, self.names.nic, subnet.id, self.public_ip_obj.id, tags=self.az_mgr.tags_get())
        self.nic_obj = self.az_mgr.nic_create_or_update(self.names.nic, parameters, resource_group=self.resource_group_name)
        self.print_item(self.nic_obj)
        self._step_end(ProvisionStep.NIC)
        return self.nic_obj

    def ssh_key_data_get(self):
        '''
        Return the contents of the SSH public key file, or None if there is no such file.
        '''
        key_data = file_contents_or_none(self.pubkey_filename)
        if key_data is None:
            self.logger.debug("no SSH public key at %s", self.pubkey_filename)
            return None
        key_data = key_data.strip()
        if not key_data:
            self.logger.warning("SSH public key file %s is empty; ignoring it", self.pubkey_filename)
            return None
        return key_data

    def admin_password_effective(self):
        '''
        Return the admin password to use for password authentication.
        Generates one if none was provided. Every password is redacted from output.
        '''
        if not self._admin_password:
            self._admin_password = msivm.vm_params.admin_password_generate()
            self._admin_password_generated = True
            output_redact('admin_password', self._admin_password)
        return self._admin_password

    def vm_create(self):
        '''
        Create the VM with a system-assigned identity.
        A present SSH public key disables password authentication.
        '''
        self._step_begin(ProvisionStep.VM)
        print("Creating a Ubuntu %s %s virtual machine w/ a public IP" % (msivm.base_defaults.IMAGE_SKU, self.vm_size))
        ssh_key_data = self.ssh_key_data_get()
        admin_password = None
        if ssh_key_data:
            print("Found SSH public key in %s. Disabling password and enabling SSH authentication." % os.path.expanduser(self.pubkey_filename))
            print("Using public key: %s" % ssh_key_data)
        else:
            admin_password = self.admin_password_effective()
        vhd_uri = msivm.vm_params.vhd_uri(self.storage_account_obj, self.names.vhd_container, self.names.vm_name, cloud=self.cloud)
        parameters = msivm.vm_params.vm_params(self.location,
                                               self.names.vm_name,
                                               self.admin_username,
                                               self.names.os_disk,
                                               vhd_uri,
                                               self.nic_obj.id,
                                               admin_password=admin_password,
                                               ssh_key_data=ssh_key_data,
                                               vm_size=self.vm_size,
                                               tags=self.az_mgr.tags_get())
        self.vm_obj = self.az_mgr.vm_create_or_update(self.names.vm, parameters, resource_group=self.resource_group_name)
        self.print_item(self.vm_obj)
        self._step_end(ProvisionStep.VM)
        return self.vm_obj

    def extension_install(self):
        '''
        Attach the managed identity extension, then fetch the VM again
        so that its identity reflects the extension install.
        '''
        self._step_begin(ProvisionStep.EXTENSION)
        print('Install Managed Service Identity Extension')
        parameters = msivm.vm_params.vm_extension_params(self.location)
        self.az_mgr.vm_extension_create_or_update(self.names.vm, self.names.extension, parameters, resource_group=self.resource_group_name)
        vm = self.az_mgr.vm_get(vm_name=self.names.vm, resource_group=self.resource_group_name)
        if vm is None:
            raise ProvisioningError("VM %s not found after extension install" % self.names.vm, step=ProvisionStep.EXTENSION)
        self.vm_obj = vm
        self._step_end(ProvisionStep.EXTENSION)
        return self.vm_obj

    def role_lookup(self):
        '''
        Find the role definition named self.role_name at resource group scope
        '''
        self._step_begin(ProvisionStep.ROLE_LOOKUP)
        print("Getting the Role ID of %s of a Resource group: %s" % (self.role_name, self.resource_group_name))
        scope = self.resource_group_obj.id
        role = self.az_mgr.rbac_role_definition_get_by_name(role_name=self.role_name, scope=scope)
        if role is None:
            raise RoleNotFoundError(self.role_name, scope, step=ProvisionStep.ROLE_LOOKUP)
        self.role_definition_obj = role
        self.print_item(role)
        self._step_end(ProvisionStep.ROLE_LOOKUP)
        return self.role_definition_obj

    def vm_principal_id(self):
        '''
        Return the principal ID of the VM system-assigned identity or raise IdentityMissingError
        '''
        identity = getattr(self.vm_obj, 'identity', None)
        principal_id = getattr(identity, 'principal_id', None) if identity is not None else None
        if not principal_id:
            raise IdentityMissingError("VM %s has no system-assigned identity principal" % self.names.vm, step=ProvisionStep.ROLE_ASSIGNMENT)
        return principal_id

    def role_assign(self):
        '''
        Grant the role to the VM identity at resource group scope
        '''
        self._step_begin(ProvisionStep.ROLE_ASSIGNMENT)
        print('Creating the role assignment for the VM')
        principal_id = self.vm_principal_id()
        self.role_assignment_obj = self.az_mgr.rbac_role_assignment_create(self.resource_group_obj.id, self.role_definition_obj.id, principal_id)
        self._step_end(ProvisionStep.ROLE_ASSIGNMENT)
        return self.role_assignment_obj

    def resources_list(self):
        '''
        Show everything in the resource group
        '''
        self._step_begin(ProvisionStep.RESOURCE_LIST)
        print('Listing all of the resources within the group')
        self.resources = self.az_mgr.resource_list(resource_group=self.resource_group_name)
        for res in self.resources:
            self.print_item(res)
        print('')
        self._step_end(ProvisionStep.RESOURCE_LIST)
        return self.resources

    def template_export(self):
        '''
        Export and show the resource group template
        '''
        self._step_begin(ProvisionStep.TEMPLATE_EXPORT)
        print("Exporting the resource group template for %s" % self.resource_group_name)
        self.template = self.az_mgr.resource_group_export_template(resource_group=self.resource_group_name)
        print(json.dumps(self.template, indent=2, sort_keys=True, default=str))
        print('')
        self._step_end(ProvisionStep.TEMPLATE_EXPORT)
        return self.template

    def epilogue_print(self):
        '''
        Tell the operator how to reach the VM and check the identity endpoint
        '''
        fqdn = ''
        dns_settings = getattr(self.public_ip_obj, 'dns_settings', None)
        if dns_settings is not None:
            fqdn = dns_settings.fqdn or ''
        print('Thank you for creating managed service identity Azure VM.')
        print("Use `netstat -tlnp` command verify that MSI service is running at 127.0.0.1:%d address." % msivm.base_defaults.MSI_PORT)
        print("Connect to your new virtual machine via: 'ssh -p 22 %s@%s'." % (self.admin_username, fqdn or self.names.dns_label))
        if self._admin_password_generated:
            # The one place a generated password is shown unredacted
            msivm.output.rawwrite("Admin Password is: %s\n" % self._admin_password)
        sys.stdout.flush()

    def teardown_confirm(self):
        '''
        Block until the operator confirms deletion.
        Raise TeardownNotConfirmed on end-of-input or a negative answer.
        '''
        if self.yes:
            return
        print('Press Enter to continue and delete the sample resources (or type "no" to keep them)')
        sys.stdout.flush()
        try:
            answer = self.input_func()
        except EOFError as exc:
            self.logger.warning("no confirmation (end of input); resource group %s is not deleted", self.resource_group_name)
            raise TeardownNotConfirmed("deletion of %s not confirmed" % self.resource_group_name, step=ProvisionStep.TEARDOWN) from exc
        if answer.strip().lower() in ('n', 'no'):
            self.logger.warning("resource group %s is not deleted", self.resource_group_name)
            raise TeardownNotConfirmed("deletion of %s declined" % self.resource_group_name, step=ProvisionStep.TEARDOWN)

    def teardown(self):
        '''
        Delete the resource group and everything in it.
        Only legal once every creation step has completed.
        '''
        self._step_begin(ProvisionStep.TEARDOWN)
        self.teardown_confirm()
        print('Delete Resource Group')
        self.az_mgr.resource_group_delete(resource_group=self.resource_group_name, wait=True)
        print("\nDeleted: %s" % self.resource_group_name)
        self._step_end(ProvisionStep.TEARDOWN)

    def run(self):
        '''
        Run every step in order. The first failure propagates;
        nothing is retried and nothing is rolled back.
        '''
        self.resource_group_ensure()
        self.storage_account_create()
        self.vnet_create()
        self.public_ip_create()
        self.nic_create()
        self.vm_create()
        self.extension_install()
        self.role_lookup()
        self.role_assign()
        self.resources_list()
        self.template_export()
        self.epilogue_print()
        if self.keep:
            self.logger.info("keeping resource group %s", self.resource_group_name)
            return
        self.teardown()

    ######################################################################
    # main stuff below here

    RESOURCE_GROUP_DEFAULT = msivm.base_defaults.RESOURCE_GROUP_DEFAULT
    RESOURCE_GROUP_HELP = 'resource group that holds every created resource'

    @classmethod
    def main_add_parser_args(cls, ap_parser):
        '''
        See msivm.common.Application.main_add_parser_args()
        '''
        super().main_add_parser_args(ap_parser)
        Manager.main_add_parser_args_manager(ap_parser.get_argument_group('azure'))

        group = ap_parser.get_argument_group('vm')
        group.add_argument('--admin_username', type=str, default=msivm.base_defaults.ADMIN_USERNAME_DEFAULT,
                           action=ArgExplicit,
                           help='VM admin username (default %(default)s)')
        group.add_argument('--admin_password', type=str, default='',
                           action=ArgExplicit,
                           help='VM admin password when no SSH key is used (default $%s, otherwise generated)' % msivm.base_defaults.ADMIN_PASSWORD_ENV)
        group.add_argument('--pubkey_filename', type=str, default=cls.pubkey_filename_default(),
                           action=ArgExplicit,
                           help='SSH public key; when present, password authentication is disabled (default %(default)s)')
        group.add_argument('--vm_size', type=str, default=msivm.base_defaults.VM_SIZE_DEFAULT,
                           action=ArgExplicit,
                           help='vm_size (default %(default)s)')
        group.add_argument('--storage_sku', type=str, default=msivm.base_defaults.STORAGE_SKU_DEFAULT, choices=StorageAccountType.values(),
                           action=ArgExplicit,
                           help='storage account SKU (default %(default)s)')
        group.add_argument('--blob_encryption', dest='blob_encryption', action='store_true', default=msivm.base_defaults.BLOB_ENCRYPTION_DEFAULT,
                           help='enable storage account blob encryption (default)')
        group.add_argument('--no_blob_encryption', dest='blob_encryption', action='store_false',
                           help='request storage account blob encryption off')

        group = ap_parser.get_argument_group('teardown')
        group.add_argument('--yes', action='store_true',
                           help='delete the resource group without asking')
        group.add_argument('--keep', action='store_true',
                           help='do not delete the resource group')

    def main_execute(self):
        '''
        See msivm.common.Application.main_execute()
        '''
        self.run()
        raise ApplicationExit(0)

def main():
    '''
    Console entry point
    '''
    MsiVmDeploy.main_with_args(sys.argv[1:])

MsiVmDeploy.main(__name__)
