"""Run-wide policy shared by the executor and orchestrator."""

from pydantic import Field

from node_e2e_runner.models.base import Model


class RunPolicy(Model):
    """What to do around each target's test execution."""

    cleanup: bool = Field(
        default=True, description="Remove delivered files from targets afterwards"
    )
    delete_instances: bool = Field(
        default=True, description="Delete provisioned instances after their run"
    )
    setup_node: bool = Field(
        default=False, description="Add the remote user to the docker group first"
    )
    test_args: str = Field(
        default="", description="Extra arguments for the remote test command"
    )

    def clean_files_on(self, provisioned: bool) -> bool:
        """Whether delivered files should be removed from a target.

        Instances about to be deleted are never cleaned file by file.
        """
        if provisioned:
            return self.cleanup and not self.delete_instances
        return self.cleanup
