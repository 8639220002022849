"""Pydantic models for the persistent game-state document."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .dice import RandomSource, chance, choose
from .exceptions import InvariantViolation

MAX_TECHNIQUES = 5
MAX_SKILLS = 6
MAX_PER_TYPE = 2


def _lowercase_enum(value: Any) -> Any:
    """Normalize enum input so "Main" and "main" both validate."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


class OrderedEnum(str, Enum):
    """String enum whose members are ranked by definition order."""

    @property
    def ordinal(self) -> int:
        """Position of the member in definition order."""
        return list(type(self)).index(self)

    def next(self) -> "OrderedEnum | None":
        """Return the following member, or None for the last one."""
        members = list(type(self))
        index = members.index(self)
        return members[index + 1] if index + 1 < len(members) else None


class Realm(OrderedEnum):
    """Qi cultivation realms, lowest first."""

    MORTAL = "mortal"
    QI_CONDENSATION = "qi_condensation"
    FOUNDATION_ESTABLISHMENT = "foundation_establishment"
    CORE_FORMATION = "core_formation"
    NASCENT_SOUL = "nascent_soul"


class BodyRealm(OrderedEnum):
    """Body cultivation realms, lowest first."""

    MORTAL_BODY = "mortal_body"
    BONE_FORGING = "bone_forging"
    COPPER_TENDON = "copper_tendon"
    DIAMOND_BODY = "diamond_body"
    PRIMORDIAL_BODY = "primordial_body"


class SectRank(OrderedEnum):
    """Ranks within a sect, lowest first."""

    OUTER_DISCIPLE = "outer_disciple"
    INNER_DISCIPLE = "inner_disciple"
    TRUE_DISCIPLE = "true_disciple"
    ELDER = "elder"
    SECT_MASTER = "sect_master"


class TimeSegment(OrderedEnum):
    """Segments of an in-game day."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class CultivationPath(str, Enum):
    """Where cultivation experience is routed."""

    QI = "qi"
    BODY = "body"
    DUAL = "dual"


class Element(str, Enum):
    """The five elements."""

    METAL = "metal"
    WOOD = "wood"
    WATER = "water"
    FIRE = "fire"
    EARTH = "earth"


class SpiritRootGrade(str, Enum):
    """Spirit root quality."""

    COMMON = "common"
    GOOD = "good"
    RARE = "rare"
    HEAVENLY = "heavenly"


class ItemType(str, Enum):
    """Inventory item categories."""

    MEDICINE = "medicine"
    MATERIAL = "material"
    EQUIPMENT = "equipment"
    ACCESSORY = "accessory"
    MANUAL = "manual"
    BOOK = "book"
    EFFECT = "effect"
    MISC = "misc"


class ItemRarity(str, Enum):
    """Item rarity tiers."""

    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class EquipmentSlot(str, Enum):
    """Slots an item can be equipped into."""

    WEAPON = "weapon"
    HEAD = "head"
    CHEST = "chest"
    LEGS = "legs"
    FEET = "feet"
    HANDS = "hands"
    ACCESSORY = "accessory"
    ARTIFACT = "artifact"


class SkillType(str, Enum):
    """Combat skill categories."""

    ATTACK = "attack"
    DEFENSE = "defense"
    SUPPORT = "support"


class TechniqueType(str, Enum):
    """Cultivation technique categories."""

    MAIN = "main"
    SUPPORT = "support"


class TechniqueGrade(str, Enum):
    """Cultivation technique grades."""

    MORTAL = "mortal"
    EARTH = "earth"
    HEAVEN = "heaven"


SPIRIT_ROOT_MULTIPLIERS: dict[SpiritRootGrade, float] = {
    SpiritRootGrade.COMMON: 1.0,
    SpiritRootGrade.GOOD: 1.2,
    SpiritRootGrade.RARE: 1.5,
    SpiritRootGrade.HEAVENLY: 2.0,
}

TECHNIQUE_GRADE_SPEED_BONUS: dict[TechniqueGrade, int] = {
    TechniqueGrade.MORTAL: 10,
    TechniqueGrade.EARTH: 20,
    TechniqueGrade.HEAVEN: 40,
}


class Stats(BaseModel):
    """Resource pools. Current values never exceed their maximum."""

    hp: int = Field(default=100, ge=0)
    hp_max: int = Field(default=100, ge=0)
    qi: int = Field(default=0, ge=0)
    qi_max: int = Field(default=0, ge=0)
    stamina: int = Field(default=100, ge=0)
    stamina_max: int = Field(default=100, ge=0)


class Attributes(BaseModel):
    """Base attributes. Equipment bonuses are computed elsewhere."""

    model_config = ConfigDict(populate_by_name=True)

    strength: int = Field(default=3, ge=0, alias="str")
    agility: int = Field(default=3, ge=0, alias="agi")
    intelligence: int = Field(default=3, ge=0, alias="int")
    perception: int = Field(default=3, ge=0)
    luck: int = Field(default=3, ge=0)


class Progress(BaseModel):
    """Cultivation progress on the qi path, plus optional body path."""

    realm: Realm = Realm.MORTAL
    realm_stage: int = Field(default=1, ge=1)
    cultivation_exp: int = Field(default=0, ge=0)

    cultivation_path: CultivationPath = CultivationPath.QI
    body_realm: BodyRealm | None = None
    body_stage: int | None = Field(default=None, ge=0)
    body_exp: int | None = Field(default=None, ge=0)
    exp_split: int | None = Field(default=None, ge=0, le=100)
    """Percent of gained experience routed to qi when dual cultivating."""

    @field_validator("realm", "body_realm", "cultivation_path", mode="before")
    @classmethod
    def normalize_enum(cls, v: Any) -> Any:
        """Accept enum values regardless of case."""
        return _lowercase_enum(v)


class SpiritRoot(BaseModel):
    """Innate affinity. Read-only for the rules engine."""

    elements: list[Element] = Field(default_factory=lambda: [Element.WOOD])
    grade: SpiritRootGrade = SpiritRootGrade.COMMON

    @property
    def multiplier(self) -> float:
        """Cultivation speed multiplier for this grade."""
        return SPIRIT_ROOT_MULTIPLIERS[self.grade]


class InventoryItem(BaseModel):
    """A stack of identical items."""

    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    type: ItemType = ItemType.MISC
    rarity: ItemRarity = ItemRarity.COMMON
    quantity: int = Field(default=1, ge=1)
    equipment_slot: EquipmentSlot | None = None
    enhancement_level: int = Field(default=0, ge=0, le=10)
    bonus_stats: dict[str, int] | None = None
    effects: dict[str, Any] | None = None

    @field_validator("type", "rarity", "equipment_slot", mode="before")
    @classmethod
    def normalize_enum(cls, v: Any) -> Any:
        """Accept enum values regardless of case; "none" means no slot."""
        v = _lowercase_enum(v)
        return None if v == "none" else v


class StorageRing(BaseModel):
    """Spatial ring that extends inventory capacity."""

    id: str
    name: str = ""
    capacity: int = Field(default=10, ge=0)


class Inventory(BaseModel):
    """Currencies and items."""

    silver: int = Field(default=100, ge=0)
    spirit_stones: int = Field(default=0, ge=0)
    items: list[InventoryItem] = Field(default_factory=list)
    storage_ring: StorageRing | None = None

    def find(self, item_id: str) -> InventoryItem | None:
        """Find an item stack by id.

        Args:
            item_id: Item ID

        Returns:
            The stack, or None
        """
        for item in self.items:
            if item.id == item_id:
                return item
        return None


class Technique(BaseModel):
    """Passive cultivation technique."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    grade: TechniqueGrade = TechniqueGrade.MORTAL
    type: TechniqueType
    elements: list[Element] = Field(default_factory=list)
    cultivation_speed_bonus: int | None = None
    """Percent bonus to cultivation exp. Defaults from grade."""
    qi_recovery_bonus: int | None = None
    breakthrough_bonus: int | None = None

    @field_validator("grade", "type", mode="before")
    @classmethod
    def normalize_enum(cls, v: Any) -> Any:
        """Accept enum values regardless of case."""
        return _lowercase_enum(v)

    @field_validator("elements", mode="before")
    @classmethod
    def normalize_elements(cls, v: Any) -> Any:
        """Lowercase element names."""
        if isinstance(v, list):
            return [_lowercase_enum(e) for e in v]
        return v

    @model_validator(mode="after")
    def default_speed_bonus(self) -> "Technique":
        """Fill the cultivation speed bonus from the grade when missing."""
        if self.cultivation_speed_bonus is None:
            self.cultivation_speed_bonus = TECHNIQUE_GRADE_SPEED_BONUS[self.grade]
        return self


class SkillEffects(BaseModel):
    """Optional combat effects of a skill."""

    model_config = ConfigDict(extra="allow")

    heal_percent: float | None = Field(default=None, ge=0, le=1)
    stun_chance: float | None = Field(default=None, ge=0, le=1)
    bleed_damage: int | None = None
    defense_break: int | None = None
    defense_boost: int | None = None


class Skill(BaseModel):
    """Active combat skill with its own leveling curve and cooldown."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    type: SkillType = SkillType.ATTACK
    element: Element | None = None
    level: int = Field(default=1, ge=1)
    max_level: int = Field(default=10, ge=1)
    exp: int = Field(default=0, ge=0)
    max_exp: int = Field(default=0, ge=0)
    damage_multiplier: float = Field(default=1.5, gt=0)
    qi_cost: int = Field(default=10, ge=0)
    cooldown: int = Field(default=1, ge=0)
    current_cooldown: int = Field(default=0, ge=0)
    effects: SkillEffects | None = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Lowercase the type; anything unrecognized is an attack skill."""
        v = _lowercase_enum(v)
        if v in (None, ""):
            return SkillType.ATTACK
        if isinstance(v, str) and v not in {t.value for t in SkillType}:
            return SkillType.ATTACK
        return v

    @field_validator("element", mode="before")
    @classmethod
    def normalize_element(cls, v: Any) -> Any:
        """Lowercase the element."""
        return _lowercase_enum(v)

    @model_validator(mode="after")
    def default_max_exp(self) -> "Skill":
        """Exp needed for the next level defaults to level x 100."""
        if self.max_exp <= 0:
            self.max_exp = self.level * 100
        return self

    @property
    def heals(self) -> bool:
        """Whether using this skill heals instead of dealing damage."""
        return (
            self.type in (SkillType.DEFENSE, SkillType.SUPPORT)
            and self.effects is not None
            and bool(self.effects.heal_percent)
        )


class Sect(BaseModel):
    """Sect descriptor."""

    id: str
    name: str
    type: str = "general"
    element: Element | None = None
    tier: int = Field(default=1, ge=1, le=5)
    description: str | None = None


class SectBenefits(BaseModel):
    """Passive benefits granted by sect rank."""

    cultivation_bonus: int = 5
    resource_access: bool = False
    technique_access: bool = False
    protection: bool = True


RANK_BENEFITS: dict[SectRank, SectBenefits] = {
    SectRank.OUTER_DISCIPLE: SectBenefits(cultivation_bonus=5),
    SectRank.INNER_DISCIPLE: SectBenefits(cultivation_bonus=10, resource_access=True),
    SectRank.TRUE_DISCIPLE: SectBenefits(
        cultivation_bonus=20, resource_access=True, technique_access=True
    ),
    SectRank.ELDER: SectBenefits(
        cultivation_bonus=30, resource_access=True, technique_access=True
    ),
    SectRank.SECT_MASTER: SectBenefits(
        cultivation_bonus=50, resource_access=True, technique_access=True
    ),
}


class SectMembership(BaseModel):
    """The player's standing in a sect."""

    sect: Sect
    rank: SectRank = SectRank.OUTER_DISCIPLE
    contribution: int = Field(default=0, ge=0)
    reputation: int = Field(default=50, ge=0, le=100)
    missions_completed: int = Field(default=0, ge=0)
    mentor: str | None = None
    benefits: SectBenefits = Field(default_factory=SectBenefits)

    @field_validator("rank", mode="before")
    @classmethod
    def normalize_rank(cls, v: Any) -> Any:
        """Accept rank values regardless of case."""
        return _lowercase_enum(v)


class Location(BaseModel):
    """Where the player is."""

    region: str = "Azure Cloud Mountains"
    place: str = "Willow Village"


class GameTime(BaseModel):
    """In-game calendar: 4 segments a day, 30 days a month, 12 months a year."""

    year: int = Field(default=1, ge=1)
    month: int = Field(default=1, ge=1, le=12)
    day: int = Field(default=1, ge=1, le=30)
    segment: TimeSegment = TimeSegment.MORNING

    @field_validator("segment", mode="before")
    @classmethod
    def normalize_segment(cls, v: Any) -> Any:
        """Accept segment values regardless of case."""
        return _lowercase_enum(v)


class DungeonProgress(BaseModel):
    """Present while the player is inside a dungeon."""

    dungeon_id: str
    current_floor: int = Field(default=1, ge=1)


class GameState(BaseModel):
    """Aggregate root: one document per run."""

    stats: Stats = Field(default_factory=Stats)
    attrs: Attributes = Field(default_factory=Attributes)
    progress: Progress = Field(default_factory=Progress)
    spirit_root: SpiritRoot = Field(default_factory=SpiritRoot)
    inventory: Inventory = Field(default_factory=Inventory)
    equipped_items: dict[EquipmentSlot, InventoryItem] = Field(default_factory=dict)
    techniques: list[Technique] = Field(default_factory=list)
    skills: list[Skill] = Field(default_factory=list)
    sect_membership: SectMembership | None = None
    location: Location = Field(default_factory=Location)
    time: GameTime = Field(default_factory=GameTime)
    karma: int = 0
    age: int = Field(default=16, ge=0)
    turn_count: int = Field(default=0, ge=0)
    flags: dict[str, bool] = Field(default_factory=dict)
    dungeon: DungeonProgress | None = None

    def find_skill(self, skill_id: str) -> Skill | None:
        """Find a learned skill by id."""
        for skill in self.skills:
            if skill.id == skill_id:
                return skill
        return None

    def to_document(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using wire names (e.g. ``attrs.str``)."""
        return self.model_dump(mode="json", by_alias=True)

    def check_invariants(self) -> None:
        """Verify the hard invariants of the document.

        Raises:
            InvariantViolation: If any invariant is broken
        """
        for pool in ("hp", "qi", "stamina"):
            current = getattr(self.stats, pool)
            maximum = getattr(self.stats, f"{pool}_max")
            if not 0 <= current <= maximum:
                raise InvariantViolation(
                    f"{pool}={current} outside [0, {maximum}]", invariant="pool_bounds"
                )

        _check_caps("techniques", [t.type for t in self.techniques], MAX_TECHNIQUES)
        _check_caps("skills", [s.type for s in self.skills], MAX_SKILLS)

        for item in self.inventory.items:
            if item.quantity < 1:
                raise InvariantViolation(
                    f"Item {item.id} has quantity {item.quantity}",
                    invariant="item_quantity",
                )
        ids = [item.id for item in self.inventory.items]
        if len(ids) != len(set(ids)):
            raise InvariantViolation("Duplicate item stacks", invariant="item_unique")


def _check_caps(kind: str, types: list[Enum], total_cap: int) -> None:
    """Raise if a learned list exceeds its aggregate or per-type cap."""
    if len(types) > total_cap:
        raise InvariantViolation(
            f"{kind}: {len(types)} exceeds cap {total_cap}", invariant="capacity"
        )
    for kind_type in set(types):
        if types.count(kind_type) > MAX_PER_TYPE:
            raise InvariantViolation(
                f"{kind}: more than {MAX_PER_TYPE} of type {kind_type.value}",
                invariant="capacity",
            )


def roll_spirit_root(rng: RandomSource) -> SpiritRoot:
    """Roll a spirit root for a new character.

    Grades are weighted 60/25/12/3; 70% of roots carry a single element.

    Args:
        rng: Random source

    Returns:
        New SpiritRoot
    """
    roll = rng.random()
    if roll < 0.6:
        grade = SpiritRootGrade.COMMON
    elif roll < 0.85:
        grade = SpiritRootGrade.GOOD
    elif roll < 0.97:
        grade = SpiritRootGrade.RARE
    else:
        grade = SpiritRootGrade.HEAVENLY

    count = 1 if chance(rng, 0.7) else 2
    pool = list(Element)
    elements: list[Element] = []
    for _ in range(count):
        element = choose(rng, pool)
        pool.remove(element)
        elements.append(element)

    return SpiritRoot(elements=elements, grade=grade)


def create_initial_state(age: int, spirit_root: SpiritRoot) -> GameState:
    """Create the starting state for a new run.

    Args:
        age: Character age in years
        spirit_root: Rolled spirit root

    Returns:
        Fresh GameState
    """
    return GameState(age=age, spirit_root=spirit_root)
