from .models import Ctv, AddressOutput, DataOutput, TreeOutput, ctv_locking_script
from .vault import Vault, vault_locking_script
from .utils import get_standard_template_hash

__all__ = [
    'Ctv',
    'AddressOutput',
    'DataOutput',
    'TreeOutput',
    'Vault',
    'ctv_locking_script',
    'vault_locking_script',
    'get_standard_template_hash',
]
