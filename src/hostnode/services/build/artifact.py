# src/hostnode/services/build/artifact.py

import json
import os
import shutil
import tarfile
import logging
from typing import Any, Dict
from hostnode.core.config import settings
from hostnode.services.exceptions import ArtifactInvalid, ManifestInvalid

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "agent-manifest.json"
ARCHIVE_FILENAME = "artifact.tgz"
SOURCE_DIRNAME = "source"

def staging_dir(deployment_uuid: str) -> str:
    return os.path.join(settings.STAGING_PATH, deployment_uuid)

def source_dir(deployment_uuid: str) -> str:
    return os.path.join(staging_dir(deployment_uuid), SOURCE_DIRNAME)

def save_archive(deployment_uuid: str, data: bytes) -> str:
    if not data:
        raise ArtifactInvalid("Uploaded artifact is empty.")
    if len(data) > settings.MAX_ARTIFACT_SIZE_BYTES:
        raise ArtifactInvalid(f"Uploaded artifact exceeds the maximum size of {settings.MAX_ARTIFACT_SIZE_BYTES} bytes.")
    directory = staging_dir(deployment_uuid)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, ARCHIVE_FILENAME)
    with open(path, "wb") as f:
        f.write(data)
    return path

def _no_links_filter(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo:
    if member.issym() or member.islnk():
        raise ArtifactInvalid(f"Links are not allowed in the artifact: {member.name}")
    return tarfile.data_filter(member, dest_path)

def extract_archive(archive_path: str, dest: str) -> str:
    """解压 gzip tarball；拒绝绝对路径、'..' 穿越以及链接。"""
    if os.path.isdir(dest):
        shutil.rmtree(dest)
    os.makedirs(dest)
    try:
        with tarfile.open(archive_path, mode="r:gz") as tar:
            tar.extractall(dest, filter=_no_links_filter)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArtifactInvalid(f"Artifact is not a valid gzip tarball: {e}") from e
    return dest

def load_manifest(root: str) -> Dict[str, Any]:
    path = os.path.join(root, MANIFEST_FILENAME)
    if not os.path.isfile(path):
        raise ArtifactInvalid(f"{MANIFEST_FILENAME} not found in tarball.")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestInvalid(f"{MANIFEST_FILENAME} is not valid JSON: {e}") from e

def resolve_inside(root: str, relative: str, what: str) -> str:
    """把 artifact 内的相对路径解析为绝对路径，不允许逃出 artifact 根目录。"""
    root_real = os.path.realpath(root)
    candidate = os.path.realpath(os.path.join(root_real, relative))
    if candidate != root_real and not candidate.startswith(root_real + os.sep):
        raise ArtifactInvalid(f'{what} "{relative}" escapes the artifact root.')
    return candidate

def cleanup(deployment_uuid: str) -> None:
    shutil.rmtree(staging_dir(deployment_uuid), ignore_errors=True)
