from dataclasses import dataclass, fields
from typing import List, Optional, Sequence

# Ordered from the root of the org tree down to the leaf
LEVELS = ('department_id', 'program_id', 'academic_structure_id', 'division_id', 'batch_id')


@dataclass(frozen=True)
class HierarchyPath:
    """
    A location in the org tree: department > program > academic structure
    > division > batch. Any level may be unset.

    Used two ways:
    - as a student's membership (where the student sits), and
    - as a reviewer's scope (which students the reviewer may act on), where
      an unset level means "no restriction at that level".
    """
    department_id: Optional[int] = None
    program_id: Optional[int] = None
    academic_structure_id: Optional[int] = None
    division_id: Optional[int] = None
    batch_id: Optional[int] = None

    @classmethod
    def from_values(cls, values: Sequence[Optional[int]]) -> 'HierarchyPath':
        return cls(*values)

    def values(self) -> List[Optional[int]]:
        return [getattr(self, f.name) for f in fields(self)]

    def set_levels(self) -> List[str]:
        return [level for level in LEVELS if getattr(self, level) is not None]

    @property
    def is_open(self) -> bool:
        return not self.set_levels()

    def deepest_level(self) -> Optional[str]:
        levels = self.set_levels()
        return levels[-1] if levels else None

    def matches(self, student_path: 'HierarchyPath') -> bool:
        """
        True when every level set on this scope equals the student's value at
        that level. A student with no value at a set level never matches.
        """
        for level in self.set_levels():
            if getattr(student_path, level) != getattr(self, level):
                return False
        return True

    def criteria(self, columns: Sequence) -> list:
        """
        The SQL form of `matches`: one equality clause per set level against
        the given columns (in LEVELS order). NULL columns never compare equal,
        so both forms agree.
        """
        clauses = []
        for level, column in zip(LEVELS, columns):
            value = getattr(self, level)
            if value is not None:
                clauses.append(column == value)
        return clauses

    def replace(self, **changes) -> 'HierarchyPath':
        data = {level: getattr(self, level) for level in LEVELS}
        data.update(changes)
        return HierarchyPath(**data)

    def to_dict(self) -> dict:
        return {
            'departmentId': self.department_id,
            'programId': self.program_id,
            'academicStructureId': self.academic_structure_id,
            'divisionId': self.division_id,
            'batchId': self.batch_id,
        }
