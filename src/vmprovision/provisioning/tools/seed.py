"""
cloud-init seed image generator.

Writes user-data and meta-data into a scratch directory and packs them into
an ISO labelled "cidata" with genisoimage, which is what the NoCloud
datasource looks for on first boot.
"""

import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ...errors import SeedError
from ...utils import run_tool
from ..collaborators import SeedImageGenerator
from ..os_profile import Credentials


class CloudInitSeedGenerator(SeedImageGenerator):
    """Build NoCloud seed ISOs carrying hostname and login."""

    def __init__(self, genisoimage: str = "genisoimage", openssl: str = "openssl",
                 timeout: Optional[float] = None):
        self.genisoimage = genisoimage
        self.openssl = openssl
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def required_tools(self) -> List[str]:
        return [self.genisoimage, self.openssl]

    def hash_password(self, password: str) -> str:
        """Return a SHA-512 crypt hash, fed to openssl on stdin."""
        result = run_tool(
            [self.openssl, "passwd", "-6", "-stdin"],
            error_cls=SeedError,
            timeout=self.timeout,
            input_text=password + "\n",
            secrets=[password],
        )
        hashed = result.stdout.strip()
        if not hashed:
            raise SeedError("openssl passwd returned an empty hash")
        return hashed

    def user_data(self, vm_name: str, credentials: Credentials, password_hash: str) -> Dict[str, Any]:
        return {
            "hostname": vm_name,
            "ssh_pwauth": True,
            "disable_root": False,
            "users": [
                {
                    "name": credentials.username,
                    "sudo": "ALL=(ALL) NOPASSWD:ALL",
                    "shell": "/bin/bash",
                    "lock_passwd": False,
                    "passwd": password_hash,
                }
            ],
            "chpasswd": {
                "list": f"root:{credentials.password}\n{credentials.username}:{credentials.password}\n",
                "expire": False,
            },
        }

    def meta_data(self, vm_name: str) -> Dict[str, Any]:
        return {"instance-id": f"iid-{vm_name}", "local-hostname": vm_name}

    def render_user_data(self, vm_name: str, credentials: Credentials, password_hash: str) -> str:
        body = yaml.safe_dump(
            self.user_data(vm_name, credentials, password_hash),
            default_flow_style=False,
            sort_keys=False,
        )
        return "#cloud-config\n" + body

    def render_meta_data(self, vm_name: str) -> str:
        return yaml.safe_dump(self.meta_data(vm_name), default_flow_style=False, sort_keys=False)

    def build_seed_image(self, vm_name: str, credentials: Credentials, output_path: Path) -> None:
        if credentials is None:
            raise SeedError(f"No credentials to seed into {vm_name}")

        password_hash = self.hash_password(credentials.password)
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="vmprovision-seed-") as tmpdir:
            user_data_path = Path(tmpdir) / "user-data"
            meta_data_path = Path(tmpdir) / "meta-data"
            user_data_path.write_text(
                self.render_user_data(vm_name, credentials, password_hash), encoding="utf-8"
            )
            meta_data_path.write_text(self.render_meta_data(vm_name), encoding="utf-8")

            self.logger.info(f"Building cloud-init seed image {output_path}")
            run_tool(
                [
                    self.genisoimage,
                    "-output", str(output_path),
                    "-volid", "cidata",
                    "-joliet", "-rock",
                    str(user_data_path), str(meta_data_path),
                ],
                error_cls=SeedError,
                timeout=self.timeout,
            )
