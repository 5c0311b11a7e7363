"""
Lookup tables for the regex entity extractor.

Keys are lower case. Values are the canonical forms written into
ExtractedEntities.
"""

from typing import Dict, FrozenSet, Tuple


# Branch abbreviations and phrases -> canonical department name.
# "IT" is matched separately and only in upper case.
BRANCHES: Dict[str, str] = {
    "ece": "Electronics and Communication Engineering",
    "electronics and communication": "Electronics and Communication Engineering",
    "electronics & communication": "Electronics and Communication Engineering",
    "eee": "Electrical and Electronics Engineering",
    "electrical and electronics": "Electrical and Electronics Engineering",
    "electrical": "Electrical and Electronics Engineering",
    "cse": "Computer Science and Engineering",
    "computer science": "Computer Science and Engineering",
    "information technology": "Information Technology",
    "mech": "Mechanical Engineering",
    "mechanical": "Mechanical Engineering",
    "civil": "Civil Engineering",
    "eie": "Electronics and Instrumentation Engineering",
    "instrumentation": "Electronics and Instrumentation Engineering",
    "chemical": "Chemical Engineering",
    "textile": "Textile Technology",
    "biotech": "Biotechnology",
    "biotechnology": "Biotechnology",
    "aero": "Aeronautical Engineering",
    "aeronautical": "Aeronautical Engineering",
    "automobile": "Automobile Engineering",
    "mba": "Master of Business Administration",
    "mca": "Master of Computer Applications",
}

IT_BRANCH = "Information Technology"


# Known places: alias -> canonical name
LOCATIONS: Dict[str, str] = {
    "chennai": "Chennai",
    "madras": "Chennai",
    "bangalore": "Bangalore",
    "bengaluru": "Bangalore",
    "blr": "Bangalore",
    "mumbai": "Mumbai",
    "bombay": "Mumbai",
    "delhi": "Delhi",
    "new delhi": "Delhi",
    "hyderabad": "Hyderabad",
    "pune": "Pune",
    "poona": "Pune",
    "kolkata": "Kolkata",
    "calcutta": "Kolkata",
    "coimbatore": "Coimbatore",
    "kovai": "Coimbatore",
    "madurai": "Madurai",
    "trichy": "Trichy",
    "tiruchirappalli": "Trichy",
    "salem": "Salem",
    "tiruppur": "Tiruppur",
    "erode": "Erode",
    "kochi": "Kochi",
    "cochin": "Kochi",
    "gurgaon": "Gurgaon",
    "gurugram": "Gurgaon",
    "noida": "Noida",
    "ahmedabad": "Ahmedabad",
    "tamil nadu": "Tamil Nadu",
    "tamilnadu": "Tamil Nadu",
    "kerala": "Kerala",
    "karnataka": "Karnataka",
    "india": "India",
    "singapore": "Singapore",
    "dubai": "Dubai",
    "london": "London",
    "usa": "USA",
}


# Curated skill/service vocabulary (canonical, lower case)
SKILL_TERMS: Tuple[str, ...] = (
    "web development",
    "web design",
    "mobile app development",
    "app development",
    "software development",
    "software testing",
    "digital marketing",
    "seo",
    "graphic design",
    "ui/ux design",
    "data science",
    "data analytics",
    "machine learning",
    "artificial intelligence",
    "cloud computing",
    "devops",
    "cyber security",
    "networking",
    "embedded systems",
    "iot",
    "vlsi",
    "python",
    "java",
    "javascript",
    "react",
    "android",
    "blockchain",
    "content writing",
    "video editing",
    "photography",
    "interior design",
    "construction",
    "real estate",
    "accounting",
    "tax consulting",
    "consulting",
    "catering",
    "event management",
    "manufacturing",
    "logistics",
    "solar installation",
    "automation",
    "cad design",
    "3d printing",
    "erp",
    "sap",
    "recruitment",
    "training",
    "tutoring",
)

# Short or alternative spellings -> canonical term
SKILL_ALIASES: Dict[str, str] = {
    "ai": "artificial intelligence",
    "ml": "machine learning",
    "web dev": "web development",
    "web developer": "web development",
    "web developers": "web development",
    "website development": "web development",
    "app dev": "app development",
    "app developer": "app development",
    "app developers": "app development",
    "qa": "software testing",
    "testing": "software testing",
    "cybersecurity": "cyber security",
    "ui/ux": "ui/ux design",
    "ux design": "ui/ux design",
    "photographer": "photography",
    "photographers": "photography",
    "interior designer": "interior design",
    "interior designers": "interior design",
    "graphic designer": "graphic design",
    "graphic designers": "graphic design",
    "chartered accountant": "accounting",
    "auditing": "accounting",
}

# alias or term -> canonical, ready for longest-first matching
SKILL_LOOKUP: Dict[str, str] = dict({term: term for term in SKILL_TERMS}, **SKILL_ALIASES)


# Occupations, singular; plurals add "s". Title-cased, these are never a
# person's name ("Find Developers in Chennai").
ROLE_NOUNS: Tuple[str, ...] = (
    "developer", "programmer", "consultant", "designer", "architect", "engineer",
    "freelancer", "contractor", "mechanic", "plumber", "electrician", "carpenter",
    "painter", "accountant", "auditor", "lawyer", "advocate", "photographer",
    "doctor", "dentist", "tutor", "trainer", "teacher", "caterer", "agent",
)

ROLE_WORDS: FrozenSet[str] = frozenset(ROLE_NOUNS) | frozenset(noun + "s" for noun in ROLE_NOUNS)


# A skill term near one of these words is offered as a service
SERVICE_CUES: FrozenSet[str] = frozenset({
    "running", "run", "runs",
    "providing", "provide", "provides", "provider", "providers",
    "offering", "offer", "offers",
    "business", "businesses",
    "service", "services",
    "owns", "own", "owning",
})

# Tokens that make a nearby number a graduation year
GRADUATION_KEYWORDS: FrozenSet[str] = frozenset({
    "batch", "batches", "batchmate", "batchmates",
    "passout", "passouts", "pass", "passed", "passing",
    "graduated", "graduating", "graduation", "graduate", "graduates", "grad", "grads",
    "alumni", "alumnus",
    "class", "classmate", "classmates",
    "year", "yr", "yop",
})

# Capitalized words that are never a location or a person
STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "my", "our", "their", "his", "her", "same", "any", "all", "some",
    "this", "that", "these", "those", "who", "what", "where", "which", "find", "search",
    "show", "list", "get", "contact", "people", "batch", "alumni", "college", "campus",
    "company", "companies", "business", "engineering", "department", "me",
    "someone", "anyone", "everyone", "friends", "seniors", "juniors", "i",
})

# First words of multi-word terms ("Web" in "Web development")
TERM_HEADS: FrozenSet[str] = frozenset(term.split()[0] for term in list(SKILL_LOOKUP) + list(BRANCHES))

# Lower-cased words that can never start a person name
NON_NAME_WORDS: FrozenSet[str] = (
    STOP_WORDS
    | ROLE_WORDS
    | TERM_HEADS
    | frozenset(SKILL_LOOKUP)
    | GRADUATION_KEYWORDS
    | frozenset(alias for alias in LOCATIONS if " " not in alias)
    | frozenset({"locate", "named", "called"})
)
