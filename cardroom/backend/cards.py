"""The fixed verb and noun decks and the per-player hand."""

from __future__ import annotations

import random
from typing import Any, Iterable


HAND_SIZE = 10

VERBS: tuple[str, ...] = ("licked", "hurt", "punished", "used", "satisfied")

NOUNS: tuple[str, ...] = (
    "Proving the link between training and performance",
    "a 70% improvement in learning",
    "foreclosure on my mother in laws home",
    "a promotion to SVP, Latin America",
    "$5 million return on investment",
    "the end of the world as we know it",
    "civilian casualities",
    "crippling debt",
    "natural selection",
    "a 20% increase in sales",
    "a lack of 508 compliance",
    "a never-ending RFP",
    "printing out 7 years of e-learning in braille for the blind guy",
    "the prediction of an early death",
    "oral herpes",
    "remedial training for those with poor personal hygiene",
    "a infinitely branching scenario",
    "activity tracking my bowel movements",
    "my zone of Proximal Development",
    "the office intern",
    "an adaptive learning system, that turned out to be Skynet",
    "the talent management system and the criminal record checks",
    "the top 10 list of 'learning thought leaders'",
    "my metacognitive processes",
    "the next presenter on stage",
    "only from the waist down on a Skype call",
    "research assistants",
    "Indian outsourced development",
    "5 year olds in a Skinner Box",
    "my hierarchy of sexual needs",
    "unnecessary amounts of cleavage for a stand-up meeting",
    "sex, as an agile user journey",
    "just-in-time gynecology training",
    "Accenture, giving performance support tips on my honeymoon",
    "a haptic feedback device, strapped to my genitals",
    "your mom, whilst wearing the Oculus Rift",
    "improving user acceptance results",
    "me being single, again",
    "a new definition of learning, which we all agree on forever",
    "never sleeping again",
    "mass redundancy",
    "engaged learners",
    "vomit",
    "unexpected pregnancy",
    "the internet never working again",
    "a very big lawsuit",
    "gun control",
    "inappropriate use of the hole-in-the-wall computer",
    "good times",
    "organised fun",
    "airing grievances",
    "bums on seats",
    "someone calling the fuzz",
    "meeting my CPE requirements",
    "a shift in politics to the left",
    "winning the DemoFest",
    "a drastic increase in knowledge retention",
    "free lifetime membership to the E-learning Guild",
    "podcasts for deaf people",
    "a meaningful xAPI statement",
    "selling the company to Skillsoft",
    "becoming Facebook friends with your line manager",
    "10,000 LinkedIn connections",
    "auto-tweeting profanity",
    "a distinct increase in the prison population",
    "a lifetime enrolment to sexual harassment training",
    "disappointingly low net promoter scores",
    "a nervous breakdown",
    "being escorted from the networking dinner",
    "reverse brainstorming my last will and testament",
    "a fresh smelling work environment",
    "knowledge actually getting worse",
    "my shattered confidence",
    "T+D magazine no longer taking my calls",
    "the make-a-wish foundation no longer wanting our companies sponsorship",
    "a sticky keyboard",
    "Bandon Hall Awards for everybody",
    "batch uploading the employee database to North Korea",
    "the no pants dance",
    "a metric ton of illegible flip charts",
    "on the team away day",
    "the breakdown of transatlantic relations",
    "using a meme incorrectly",
    "a formal, written warning",
    "Kirkpatrick's fifth level",
    "with the HR director",
    "everyone loving the change",
    "standing up desks",
    "no more board pens in the conference room",
    "a management review of all training activities",
    "the ball, in a WebEx conference",
    "a transgender role-playing scenario",
    "marital relations by employing the 70/20/10 framework in the bedroom",
    "with the wireless mic turned on",
    "safe harbour regulations",
    "Marge, the cleaning lady",
    "every muffin at the coffee table",
    "whilst wearing Google Glasses",
    "analytics that take account of time-spent on pron sites",
    "Sal Khan",
    "my annual performance review",
    "A drag and drop puzzle, using the rotting carcass of Cecil the Lion as a background image",
    "inappropriate peer feedback",
    "a coaching session the  men's sauna",
    "the forgetting curve",
    "a face to face training session, using someone else's face as a mask",
    "tantric sex as a group warm-up exercise",
    "whatever the hell I want",
    "the feedback of my passive aggressive manager",
    "middle management",
    "the lack of mute button for everyone else on this conference call",
    "icebreakers",
    "another damn checkbox exercise",
    "my completion status",
    "our brand guidelines",
    "a jeopardy game",
    "my balls",
    "a sexual suggestive Storyline activity",
    "the whiteboard",
    "a wrist-slitting onboarding program",
    "brutal truth telling",
    "another fecking creativity exercise",
    "my LMS administrator",
    "my smile sheet",
    "Sir Ken Robinson",
    "whilst on a conference call",
    "at the thought of action learning",
    "the gratuitous use of comic sans",
    "prostitution, disguised as kinesthetic learning",
    "a short novel, passing as e-learning",
    "racially questionable stock photos",
    "the training needs analysis",
    "a poorly conceived true or false question",
    "Elliott Masie",
    "poorly judged clipart",
)


class CardDealer:
    """Deals a hand of nouns and serves the verb card of each turn."""

    def __init__(self, hand: Iterable[str] | None = None, rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._hand: list[str] = list(hand) if hand is not None else []

    @property
    def hand(self) -> list[str]:
        return list(self._hand)

    def deal(self, hand_size: int = HAND_SIZE) -> list[str]:
        if len(NOUNS) <= hand_size:
            self._hand = list(NOUNS)
            return self.hand
        remaining = [noun for noun in NOUNS if noun not in self._hand]
        missing = max(0, hand_size - len(self._hand))
        self._hand.extend(self._rng.sample(remaining, missing))
        return self.hand

    def question_verb(self, turn: Any) -> str | None:
        if not isinstance(turn, int) or isinstance(turn, bool) or not 1 <= turn <= len(VERBS):
            return None
        return VERBS[turn - 1]

    def question_cards(self, turn: Any) -> dict[str, Any] | None:
        verb = self.question_verb(turn)
        if verb is None:
            return None
        return {"verb": verb, "nouns": self.hand}

    def discard(self, nouns: Iterable[str]) -> None:
        for noun in nouns:
            if noun in self._hand:
                self._hand.remove(noun)

    def noun_id(self, noun: str) -> int:
        """1-based position of the noun in the deck, 0 when unknown."""
        try:
            return NOUNS.index(noun) + 1
        except ValueError:
            return 0
