import unittest
from dataclasses import dataclass

from tokenforge.core.command import Command


@dataclass
class AddArgs:
    a: int
    b: int


class Add(Command[AddArgs, int]):
    def __call__(self, args: AddArgs) -> int:
        return args.a + args.b


class CommandTestCase(unittest.TestCase):
    def test_command(self):
        add = Add()
        self.assertEqual(add(AddArgs(1, 2)), 3)

    def test_get_logger(self):
        add = Add()
        self.assertEqual(add.get_logger().name, "Add")
        self.assertEqual(add.get_logger("step").name, "Add.step")


if __name__ == "__main__":
    unittest.main()
