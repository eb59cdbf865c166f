import click

GroupId = int
TreeDepth = int
BatchSize = int


class GroupIdType(click.ParamType):
    """A group id as given on the command line: a non-negative integer."""

    name = "group_id"

    def convert(self, value, param, ctx):
        if isinstance(value, int) and not isinstance(value, bool):
            group_id = value
        else:
            try:
                group_id = int(str(value).strip(), 10)
            except ValueError:
                self.fail(f"'{value}' is not a group id", param, ctx)
        if group_id < 0:
            self.fail(f"group ids start at 0, got {group_id}", param, ctx)
        return group_id


GROUP_ID = GroupIdType()
