"""Build step - runs the site build and snapshots its output."""

import shlex
import subprocess
from pathlib import Path

from shared.config import Config
from shared.errors import BuildFailure
from shared.logger import StructuredLogger
from site_deploy.artifacts import BuildArtifactSet


class SiteBuilder:
    """Run the configured build command and collect the output directory."""

    def __init__(self, config: Config):
        self.config = config

    @property
    def output_dir(self) -> Path:
        output = Path(self.config.BUILD_DIR)
        if not output.is_absolute():
            output = Path(self.config.BUILD_CWD) / output
        return output

    def build(self) -> BuildArtifactSet:
        """
        Build the site and snapshot the output.

        With no BUILD_COMMAND configured, the existing output directory is
        used as-is.

        Raises:
            BuildFailure: command missing, non-zero exit, timeout, or no output
        """
        command = self.config.BUILD_COMMAND.strip()
        if command:
            self._run(command)
        else:
            StructuredLogger.info("No build command configured, using existing output", build_dir=str(self.output_dir))

        return BuildArtifactSet.snapshot(self.output_dir)

    def _run(self, command: str) -> None:
        cmd = shlex.split(command)
        StructuredLogger.info("Running build", command=command, cwd=self.config.BUILD_CWD)

        try:
            process = subprocess.Popen(
                cmd, cwd=self.config.BUILD_CWD, stdout=subprocess.PIPE, stderr=subprocess.PIPE
            )
        except OSError as e:
            raise BuildFailure(f"Could not start build command {cmd[0]!r}: {str(e)}") from e

        try:
            stdout, stderr = process.communicate(timeout=self.config.BUILD_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            process.kill()
            process.communicate()
            raise BuildFailure(f"Build timed out after {self.config.BUILD_TIMEOUT}s") from e

        if process.returncode != 0:
            error_msg = stderr.decode("utf-8", errors="replace").strip() if stderr else "Unknown build error"
            # Last lines are the useful ones
            tail = "\n".join(error_msg.splitlines()[-20:])
            raise BuildFailure(f"Build exited with code {process.returncode}: {tail}")

        StructuredLogger.info(
            "Build completed",
            command=command,
            stdout_lines=len(stdout.splitlines()) if stdout else 0,
        )
