from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from functools import cached_property
from typing import TYPE_CHECKING, Self, ClassVar, cast, get_type_hints, Any

import z3

from items import ItemSort

__all__ = [
    "Expr",
    "Bool",
    "Int",
    "Term",
    "Enum",
    "Fun",
    "Rel",
    "true",
]

if not TYPE_CHECKING:

    class Expr(z3.ExprRef, ABC):
        """
        A representation of a Z3 sort at the type-level.
        New sorts are defined by sub-classing this class
        (directly, or through `Int`, `Term` or `Enum`),
        so that well-sortedness of protocol models can be *statically* checked
        (e.g., by `mypy`).

        An instance of the class represents a (transition-system) constant
        of this sort.

        For example, principals are integers, so we can declare:
        ```python
        class Principal(Int): ...
        ```
        Note the ellipsis (`...`) are not a placeholder ---
        this is the literal code for defining a type-level sort.

        To create a variable (equivalent to `z3.Const`) use:
        ```python
        p = Principal("p")
        ```
        """

        const_name: str
        mutable: bool

        _cache: ClassVar[dict[str, type["Expr"]]] = {}

        def __init__(
            self, name: str, mutable: bool = False, *, const: z3.ExprRef | None = None
        ) -> None:
            if const is None:
                const = z3.Const(name, self.__class__.ref())
            super(Expr, self).__init__(const.ast, const.ctx)
            self.const_name = name
            self.mutable = mutable

        @classmethod
        def __init_subclass__(cls, **kwargs) -> None:
            super().__init_subclass__(**kwargs)
            cls._cache[cls.__name__] = cls

        @classmethod
        @abstractmethod
        def ref(cls) -> z3.SortRef: ...

        @cached_property
        def fun_ref(self) -> z3.FuncDeclRef:
            return self.decl()

        @cached_property
        def next(self) -> Self:
            return self.__class__(self.const_name + "'", self.mutable)

        def unchanged(self) -> z3.BoolRef:
            if not self.mutable:
                return z3.BoolVal(True)
            return self.update(self)

        def update(self, val: z3.ExprRef) -> z3.BoolRef:
            assert self.mutable, f"Trying to update immutable constant {self}"
            return self.next == val

    class Bool(Expr):
        @classmethod
        def ref(cls) -> z3.SortRef:
            return z3.BoolSort()

    class Int(Expr):
        @classmethod
        def ref(cls) -> z3.SortRef:
            return z3.IntSort()

    class Term(Expr):
        """
        Items (`items.ItemSort`):
        keys, data, keyed hashes and pairs.
        """

        @classmethod
        def ref(cls) -> z3.SortRef:
            return ItemSort


if TYPE_CHECKING:

    class Expr(z3.Const, ABC):
        const_name: str

        def __init__(
            self, name: str, mutable: bool = False, *, const: z3.ExprRef | None = None
        ) -> None: ...

        @classmethod
        def ref(cls) -> z3.SortRef: ...

        @property
        def next(self) -> Self: ...

        @property
        def fun_ref(self) -> z3.FuncDeclRef: ...

        def unchanged(self) -> z3.BoolRef: ...

        def update(self, val: z3.ExprRef) -> z3.BoolRef: ...

    class Bool(Expr, z3.Bool): ...

    class Int(Expr, z3.Int): ...

    class Term(Expr, z3.DatatypeRef): ...


class Enum(Expr, ABC):
    """
    A finite sort with named values, e.g.
    ```python
    class Phase(Enum):
        idle: "Phase"
        done: "Phase"
    ```
    Values are then available as `Phase.idle` and `Phase.done`.
    """

    enum_sort: ClassVar[z3.SortRef]
    enum_values: tuple[Self, ...]

    @classmethod
    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        names = []
        for field, hint in get_type_hints(cls, localns={cls.__name__: cls}).items():
            if hint is cls:
                names.append(field)

        sort, values = z3.EnumSort(cls.__name__, names)
        cls.enum_sort = sort

        enum_values: list[Self] = []
        for name, value in zip(names, values):
            enum_value: Self = cls(name, False, const=value)  # type: ignore
            setattr(cls, name, enum_value)
            enum_values.append(enum_value)

        cls.enum_values = tuple(enum_values)

    @classmethod
    def ref(cls) -> z3.SortRef:
        return cls.enum_sort


type Sort = type[Expr]
type Signature = tuple[Sort, ...]


class Fun[*Ts, T: z3.ExprRef]:
    """
    A function symbol, e.g. `Fun[Principal, KeySeq, Principal]`
    for a binary function from principals and key sequences to principals.
    """

    name: str
    mutable: bool
    fun: z3.FuncDeclRef

    signature: ClassVar[Signature]
    _cache: ClassVar[dict[Signature, type]] = {}

    def __init__(
        self, name: str, mutable: bool = True, fun: z3.FuncDeclRef | None = None
    ) -> None:
        self.name = name
        self.mutable = mutable
        if fun is None:
            fun = z3.Function(name, *(sort.ref() for sort in self.signature))
        self.fun = fun

    @classmethod
    def __class_getitem__(cls, item: Sort | Signature) -> "type[Fun[*Ts, T]]":
        if not isinstance(item, tuple):
            item = (item,)
        return cls.declare(item)

    @classmethod
    def declare(cls, signature: Signature) -> type:
        if signature not in cls._cache:
            cls._cache[signature] = type(
                cls._subclass_name(signature), (cls,), {"signature": signature}
            )

        return cls._cache[signature]

    @classmethod
    def _subclass_name(cls, signature: Signature) -> str:
        return f"Fun[{", ".join(sort.__name__ for sort in signature)}]"

    @cached_property
    def next(self) -> Self:
        if not self.mutable:
            return self
        return self.__class__(self.name + "'", self.mutable)

    def __call__(self, *args: *Ts) -> T:
        return self.fun(*args)  # type: ignore

    def unchanged(self) -> z3.BoolRef:
        if not self.mutable:
            return z3.BoolVal(True)
        return self.update_with_lambda(lambda old, new, *args: old(*args) == new(*args))

    def update_with_lambda(
        self, fun: Callable[[Self, Self, *Ts], z3.BoolRef]
    ) -> z3.BoolRef:
        consts = tuple(sort(f"X{i}") for i, sort in enumerate(self.signature[0:-1]))
        args = cast(tuple[*Ts], consts)
        return z3.ForAll(consts, fun(self, self.next, *args))

    def update(self, places: Mapping[tuple[*Ts], T]) -> z3.BoolRef:
        def update(old: Self, new: Self, *args: *Ts) -> z3.BoolRef:
            if_expr = old(*args)
            for place_args, new_value in places.items():
                if_expr = z3.If(_pairwise_equal(place_args, args), new_value, if_expr)
            return new(*args) == if_expr

        return self.update_with_lambda(update)


def _pairwise_equal[*Ts](args1: tuple[*Ts], args2: tuple[*Ts]) -> z3.BoolRef:
    return z3.And(*(parg == arg for parg, arg in zip(args1, args2)))  # type: ignore


class Rel[*Ts](Fun[*Ts, Bool]):
    """
    A relation symbol, e.g. `Rel[Principal]` for a set of principals.
    """

    @classmethod
    def __class_getitem__(cls, item: Sort | Signature) -> "type[Rel[*Ts]]":
        if not isinstance(item, tuple):
            item = (item,)

        return super().__class_getitem__(item + (Bool,))  # type: ignore

    @classmethod
    def _subclass_name(cls, signature: Signature) -> str:
        return f"Rel[{", ".join(sort.__name__ for sort in signature[0:-1])}]"

    def update(self, places: Mapping[tuple[*Ts], z3.BoolRef]) -> z3.BoolRef:
        return super().update(cast(Mapping[tuple[*Ts], Bool], places))


true = Bool("__true__", False, const=z3.BoolVal(True))
