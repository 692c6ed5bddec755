from importlib import resources


def load_example() -> str:
    with resources.files(__package__).joinpath("data/example.xml").open("r", encoding="utf-8") as fh:
        return fh.read()
