import importlib

import pytest


ENTRYPOINTS = [
    "bibflow",
    "web.app",
]


@pytest.mark.parametrize("module_name", ENTRYPOINTS)
def test_entrypoint_help(module_name):
    module = importlib.import_module(module_name)
    assert hasattr(module, "main"), f"{module_name} missing main()"

    with pytest.raises(SystemExit) as excinfo:
        module.main(["--help"])

    assert excinfo.value.code == 0


@pytest.mark.parametrize("command", [
    "register", "detect", "process", "list", "status", "cancel", "search", "stats", "worker",
    "serve",
])
def test_subcommand_help(command):
    import bibflow

    with pytest.raises(SystemExit) as excinfo:
        bibflow.main([command, "--help"])

    assert excinfo.value.code == 0


def test_no_command_prints_help():
    import bibflow

    assert bibflow.main([]) == 1
