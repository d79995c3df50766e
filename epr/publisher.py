from __future__ import annotations

import os
import secrets

from .errors import PublishError

# Applied through os.open, so the process umask narrows it like a plain write.
FILE_MODE = 0o666


def publish(path: str, payload: bytes) -> None:
    """Replace the contents of ``path`` with ``payload`` atomically.

    The payload goes to a temporary file in the same directory which is then
    renamed over ``path``; readers see the old or the new content, never a mix.
    The parent directory must already exist.
    """
    target = os.path.abspath(path)
    tmp = os.path.join(os.path.dirname(target), f".{os.path.basename(target)}.{secrets.token_hex(4)}.tmp")
    created = False
    try:
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
        created = True
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, target)
        created = False
    except OSError as e:
        raise PublishError(f"failed to write nodes file {path}: {e}") from e
    finally:
        if created and os.path.exists(tmp):
            os.unlink(tmp)
