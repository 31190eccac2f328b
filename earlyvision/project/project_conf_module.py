from __future__ import annotations

# Built-in
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable

# Third-party
import matplotlib.pyplot as plt

# Local
from earlyvision.data_io.config_io import load_yaml
from earlyvision.project.project_manager_module import ProjectManager, dispatcher

if TYPE_CHECKING:
    # Local
    from earlyvision.data_io.config_io import Configuration


def _get_validation_params_method(base: Path) -> Callable | None:
    """
    Get the parameter validation function if a .py file with 'validation' in
    its name is found in the parameters/ subfolder.
    """
    validation_files = list(base.glob("*validation*.py"))
    match len(validation_files):
        case 0:
            print(
                f"No validation file provided in {base}. "
                f"Proceeding without parameter validation."
            )
            return None
        case 1:
            # Local
            from earlyvision.parameters.param_validation import validate_params

            return validate_params
        case n:
            raise ValueError(
                f"Expected at most 1 validation file in {base}, but found {n} files"
                f" with 'validation' in their name:"
                f"{[file.name for file in validation_files]}"
            )


def load_parameters(parameters_folder: Path | str | None = None) -> Configuration:
    """
    Load and validate the YAML files of the parameters folder.

    Parameters
    ----------
    parameters_folder : Path or str, optional
        Folder with the *.yaml files, earlyvision/parameters by default.
    """
    project_conf_module_file_path = Path(__file__).resolve()
    package_root_path = project_conf_module_file_path.parent.parent

    if parameters_folder is None:
        parameters_folder = package_root_path.joinpath("parameters")
    parameters_folder = Path(parameters_folder)
    yaml_files = sorted(parameters_folder.glob("*.yaml"))

    validate_params = _get_validation_params_method(
        package_root_path.joinpath("parameters")
    )

    config: Configuration = load_yaml(yaml_files)

    if validate_params:
        config = validate_params(
            config, project_conf_module_file_path, package_root_path
        )

    return config


def main():
    start_time = time.time()
    config = load_parameters()

    if config.profile is True:
        # Built-in
        import cProfile
        import pstats

        profiler = cProfile.Profile()
        profiler.enable()

    PM = ProjectManager(config)

    dispatcher(PM, config)

    end_time = time.time()
    print(
        "Total time taken: ",
        time.strftime(
            "%H hours %M minutes %S seconds", time.gmtime(end_time - start_time)
        ),
    )

    plt.show()

    if config.profile is True:
        profiler.disable()
        stats = pstats.Stats(profiler).sort_stats("tottime")
        stats.print_stats(20)


if __name__ == "__main__":
    main()
