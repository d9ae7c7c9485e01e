# multikf/models/settings.py

from pydantic_settings import BaseSettings

from multikf.models.provisioner import Provisioner


class MultikfSettings(BaseSettings):
    """
    Settings shared by every multikf command.
    By default, these fields map to environment variables prefixed with `MULTIKF_`.
    For example, `MULTIKF_ROOT_DIR`, `MULTIKF_PROVISIONER`, etc.

    Built once per invocation (command-line flags override the environment)
    and handed to the machine factory; nothing reads it from global state.
    """

    root_dir: str = ".multikfdir"
    provisioner: Provisioner = Provisioner.docker
    verbose: bool = True

    class Config:
        env_prefix = "MULTIKF_"
        frozen = True
