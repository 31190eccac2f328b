# Built-in
import inspect

# Third-party
import pandas as pd


class PrintableMixin:
    """
    Mixin class to add pretty-printing capabilities to classes.
    """

    def __str__(self):
        class_info = f"Instance of {self.__class__.__name__}, ID: {id(self)}\n"

        # Getting class, module, and line number information
        class_name = self.__class__.__name__
        module_name = inspect.getmodule(self).__name__
        line_number = inspect.getsourcelines(self.__class__)[1]
        class_info += f"\nClass name: {class_name}\nCreated at: {module_name} line {line_number}\n"

        attributes = [
            attr
            for attr in vars(self)
            if not callable(getattr(self, attr)) and not attr.startswith("__")
        ]
        max_attr_name_len = max(len(attr) for attr in attributes) if attributes else 0

        attributes_info = "\nAttributes:\n"
        for attr in attributes:
            attr_instance = getattr(self, attr)
            type_name = type(attr_instance).__name__

            mem_size = ""
            match attr_instance:
                case pd.DataFrame():
                    attr_value = f"shape: {attr_instance.shape}"
                    mem_size = f"{attr_instance.values.nbytes / 1e6:.2f} MB"
                case _ if hasattr(attr_instance, "shape") and hasattr(
                    attr_instance, "nbytes"
                ):
                    attr_value = f"shape: {attr_instance.shape}"
                    mem_size = f"{attr_instance.nbytes / 1e6:.2f} MB"
                case dict():
                    attr_value = f"n keys: {len(attr_instance)}"
                case list() | tuple():
                    attr_value = len(attr_instance)
                case float():
                    attr_value = f"{attr_instance:.2f}"
                case _:
                    attr_value = attr_instance

            attributes_info += (
                f"{attr:<{max_attr_name_len}}\t{type_name:<16}\t{str(attr_value):<30}"
                f"\t{mem_size}\n"
            )

        return class_info + attributes_info
