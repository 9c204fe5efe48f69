"""Workflow definition model.

Definitions are stored as JSON and parsed into these models at the start
of every run. Field names follow the stored camelCase form; Python code
can use the snake_case attribute names.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from core.constants import LoopType
from core.exceptions import ValidationError

StateKind = str

KIND_FINAL: StateKind = "final"
KIND_LOOP: StateKind = "loop"
KIND_INVOKE: StateKind = "invoke"
KIND_ALWAYS: StateKind = "always"
KIND_ON: StateKind = "on"
KIND_EMPTY: StateKind = "empty"


class DefinitionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Guard(DefinitionModel):
    """Condition attached to a transition."""

    type: str = Field(default="condition", description="Guard kind, informational")
    params: Dict[str, Any] = Field(default_factory=dict, description="{key, operator, value}")


class EntryAction(DefinitionModel):
    type: str
    params: Optional[Dict[str, Any]] = None


class Transition(DefinitionModel):
    """A move to ``target``, optionally guarded."""

    target: str = Field(min_length=1, description="Target state name")
    guard: Optional[Guard] = None


def _coerce_transition(value: Any) -> Any:
    if isinstance(value, str):
        return {"target": value}
    return value


def _coerce_transitions(value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, list):
        value = [value]
    return [_coerce_transition(v) for v in value]


class Invoke(DefinitionModel):
    """Call of a catalogued action.

    ``src`` is absent on the marker invokes some editors attach to loop
    states; those only carry ``onDone``/``onError``.
    """

    src: Optional[str] = Field(default=None, description="Action id, e.g. sessions.getActive")
    input: Optional[Dict[str, Any]] = Field(default=None, description="Input mapping of literals and $.paths")
    on_done: Optional[Transition] = Field(default=None, alias="onDone")
    on_error: Optional[Transition] = Field(default=None, alias="onError")

    @field_validator("on_done", "on_error", mode="before")
    @classmethod
    def _string_target(cls, value: Any) -> Any:
        return _coerce_transition(value)


class LoopDefinition(DefinitionModel):
    """``forEach`` over a resolved collection or ``while`` a guard holds."""

    type: LoopType
    collection: Optional[Any] = Field(default=None, description="Array, or $.path resolving to one")
    condition: Optional[Guard] = None
    body_states: Dict[str, "StateDefinition"] = Field(default_factory=dict, alias="bodyStates")
    body_initial: Optional[str] = Field(default=None, alias="bodyInitial")
    max_iterations: Optional[int] = Field(default=None, ge=0, alias="maxIterations")
    timeout_ms: Optional[int] = Field(default=None, ge=0, alias="timeoutMs")
    parallel_batch_size: int = Field(default=0, ge=0, alias="parallelBatchSize")
    item_variable: str = Field(default="item", alias="itemVariable")
    index_variable: str = Field(default="index", alias="indexVariable")
    on_done: Optional[Transition] = Field(default=None, alias="onDone")
    on_error: Optional[Transition] = Field(default=None, alias="onError")

    @field_validator("on_done", "on_error", mode="before")
    @classmethod
    def _string_target(cls, value: Any) -> Any:
        return _coerce_transition(value)

    @field_validator("parallel_batch_size", mode="before")
    @classmethod
    def _null_batch(cls, value: Any) -> Any:
        return 0 if value is None else value

    @model_validator(mode="after")
    def _check_shape(self) -> "LoopDefinition":
        if self.type == LoopType.WHILE and self.condition is None:
            raise ValueError("While loop requires a condition")
        if self.type == LoopType.FOR_EACH and self.collection is None:
            raise ValueError("ForEach loop requires a collection")
        if self.body_states and self.body_initial is None:
            raise ValueError("Loop body requires bodyInitial")
        return self

    @property
    def has_body(self) -> bool:
        return bool(self.body_states)


class StateDefinition(DefinitionModel):
    """One named state of a workflow."""

    type: Optional[str] = Field(default=None, description="'final' for terminal states")
    entry: Optional[List[EntryAction]] = None
    on: Optional[Dict[str, List[Transition]]] = None
    always: Optional[List[Transition]] = None
    invoke: Optional[Invoke] = None
    loop: Optional[LoopDefinition] = None

    @field_validator("always", mode="before")
    @classmethod
    def _always_list(cls, value: Any) -> Any:
        return _coerce_transitions(value)

    @field_validator("on", mode="before")
    @classmethod
    def _on_lists(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {event: _coerce_transitions(t) for event, t in value.items()}

    @property
    def kind(self) -> StateKind:
        if self.type == "final":
            return KIND_FINAL
        if self.loop is not None:
            return KIND_LOOP
        if self.invoke is not None and self.invoke.src:
            return KIND_INVOKE
        if self.always:
            return KIND_ALWAYS
        if self.on:
            return KIND_ON
        return KIND_EMPTY


LoopDefinition.model_rebuild()


class PayloadProperty(DefinitionModel):
    """One property of the trigger payload contract."""

    name: str = Field(min_length=1)
    type: str = Field(default="string", pattern="^(string|number|boolean|object|array)$")
    description: Optional[str] = None
    required: bool = False
    default_value: Optional[Any] = Field(default=None, alias="defaultValue")


class WorkflowDefinition(DefinitionModel):
    """A complete state machine definition."""

    id: Optional[str] = None
    initial: str = Field(min_length=1, description="Name of the first state")
    states: Dict[str, StateDefinition] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict, description="Initial context values")
    payload_schema: Optional[List[PayloadProperty]] = Field(default=None, alias="payloadSchema")


def parse_definition(raw: Union[Dict[str, Any], WorkflowDefinition, None]) -> WorkflowDefinition:
    """Parse a stored definition.

    Raises:
        ValidationError: If the definition is malformed
    """
    if isinstance(raw, WorkflowDefinition):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("Workflow definition must be an object")
    try:
        return WorkflowDefinition.model_validate(raw)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'definition'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid workflow definition: {problems}") from e


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


def apply_payload_schema(definition: WorkflowDefinition, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fill defaults and check the payload against ``payloadSchema``.

    Returns:
        A new payload dict with defaults applied

    Raises:
        ValidationError: If a required property is missing or has the wrong type
    """
    result = dict(payload)
    for prop in definition.payload_schema or []:
        if result.get(prop.name) is None:
            if prop.default_value is not None:
                result[prop.name] = prop.default_value
            elif prop.required:
                raise ValidationError(f'Missing required payload property "{prop.name}"')
            continue
        if not _TYPE_CHECKS[prop.type](result[prop.name]):
            raise ValidationError(
                f'Payload property "{prop.name}" must be of type {prop.type}'
            )
    return result
