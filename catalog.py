"""
=============================================================================
CATALOG.PY — Catálogo de Contenido (solo lectura)
=============================================================================
Duas, categorías y journeys. El motor solo LEE de aquí; la edición del
catálogo (panel de administración) queda fuera de este servicio.

Al arrancar se insertan los datos iniciales si la BD está vacía
(seed_catalog). Repetirlo no duplica nada.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from database import storage_errors
from errors import NotFound
from models import Category, Dua, Journey, JourneyDua, TimeSlot, Difficulty

logger = logging.getLogger("rizq.catalog")


# =============================================================================
# ===================== LECTURA ===============================================
# =============================================================================

@storage_errors
def list_categories(db: Session) -> list[Category]:
    return db.query(Category).order_by(Category.id).all()


@storage_errors
def list_duas(db: Session, category: Optional[str] = None) -> list[Dua]:
    """Biblioteca de duas, opcionalmente filtrada por slug de categoría"""
    query = db.query(Dua).options(joinedload(Dua.category))
    if category:
        query = query.join(Category).filter(Category.slug == category)
    return query.order_by(Dua.id).all()


@storage_errors
def get_dua(db: Session, dua_id: int) -> Dua:
    dua = db.query(Dua).options(joinedload(Dua.category)).filter(Dua.id == dua_id).first()
    if not dua:
        raise NotFound("Dua no encontrado")
    return dua


@storage_errors
def list_journeys(db: Session, featured_only: bool = False) -> list[Journey]:
    """Destacados primero, luego por orden y nombre"""
    query = db.query(Journey)
    if featured_only:
        query = query.filter(Journey.is_featured == True)
    return query.order_by(Journey.is_featured.desc(), Journey.sort_order, Journey.name).all()


@storage_errors
def get_journey(db: Session, journey_id: int) -> Journey:
    """Journey con sus duas (JourneyDua → Dua) ya cargados"""
    journey = db.query(Journey).options(
        joinedload(Journey.duas).joinedload(JourneyDua.dua)
    ).filter(Journey.id == journey_id).first()
    if not journey:
        raise NotFound("Journey no encontrado")
    return journey


# =============================================================================
# ===================== DATOS INICIALES =======================================
# =============================================================================

DEFAULT_CATEGORIES = [
    ("Morning", "morning", "Duas for the morning to seek protection and provision."),
    ("Evening", "evening", "Duas for the evening and night."),
    ("Rizq", "rizq", "Duas specifically asking for wealth and provision."),
    ("Gratitude", "gratitude", "Duas of thankfulness and appreciation."),
]

DEFAULT_DUAS = [
    {
        "title": "Ayatul Kursi (Verse of the Throne)",
        "title_ar": "آية الكرسي",
        "arabic_text": "اللَّهُ لَا إِلَٰهَ إِلَّا هُوَ الْحَيُّ الْقَيُّومُ ۚ لَا تَأْخُذُهُ سِنَةٌ وَلَا نَوْمٌ ۚ لَّهُ مَا فِي السَّمَاوَاتِ وَمَا فِي الْأَرْضِ ۗ مَن ذَا الَّذِي يَشْفَعُ عِندَهُ إِلَّا بِإِذْنِهِ ۚ يَعْلَمُ مَا بَيْنَ أَيْدِيهِمْ وَمَا خَلْفَهُمْ ۖ وَلَا يُحِيطُونَ بِشَيْءٍ مِّنْ عِلْمِهِ إِلَّا بِمَا شَاءَ ۚ وَسِعَ كُرْسِيُّهُ السَّمَاوَاتِ وَالْأَرْضَ ۖ وَلَا يَئُودُهُ حِفْظُهُمَا ۚ وَهُوَ الْعَلِيُّ الْعَظِيمُ",
        "transliteration": "Allahu la ilaha illa Huwal-Hayyul-Qayyum, la ta'khudhuhu sinatun wa la nawm, lahu ma fis-samawati wa ma fil-ard, man dhal-ladhi yashfa'u 'indahu illa bi-idhnih, ya'lamu ma bayna aydihim wa ma khalfahum, wa la yuhituna bi-shay'im-min 'ilmihi illa bima sha'a, wasi'a kursiyyuhus-samawati wal-ard, wa la ya'uduhu hifdhuhuma, wa Huwal-'Aliyyul-'Adhim.",
        "translation": "Allah - there is no deity except Him, the Ever-Living, the Sustainer of existence. Neither drowsiness overtakes Him nor sleep. To Him belongs whatever is in the heavens and whatever is on the earth. Who is it that can intercede with Him except by His permission? He knows what is before them and what will be after them, and they encompass not a thing of His knowledge except for what He wills. His Throne extends over the heavens and the earth, and their preservation tires Him not. And He is the Most High, the Most Great.",
        "source": "Quran 2:255",
        "repetitions": 1,
        "best_time": "After Fajr, before sleep, after each salah",
        "difficulty": "Beginner",
        "est_duration_sec": 45,
        "rizq_benefit": "Comprehensive protection of wealth and provision",
        "xp_value": 50,
        "category": "morning",
    },
    {
        "title": "Morning Protection Dua (Sabah wa Amsa)",
        "title_ar": "دعاء الصباح والمساء",
        "arabic_text": "أَصْبَحْنَا وَأَصْبَحَ الْمُلْكُ لِلَّهِ، وَالْحَمْدُ لِلَّهِ، لَا إِلَهَ إِلَّا اللَّهُ وَحْدَهُ لَا شَرِيكَ لَهُ، لَهُ الْمُلْكُ وَلَهُ الْحَمْدُ وَهُوَ عَلَى كُلِّ شَيْءٍ قَدِيرٌ، رَبِّ أَسْأَلُكَ خَيْرَ مَا فِي هَذَا الْيَوْمِ وَخَيْرَ مَا بَعْدَهُ، وَأَعُوذُ بِكَ مِنْ شَرِّ مَا فِي هَذَا الْيَوْمِ وَشَرِّ مَا بَعْدَهُ",
        "transliteration": "Asbahna wa asbahal-mulku lillah, walhamdu lillah, la ilaha illallahu wahdahu la sharika lah, lahul-mulku wa lahul-hamd, wa Huwa 'ala kulli shay'in Qadir. Rabbi as'aluka khayra ma fi hadhal-yawm wa khayra ma ba'dah, wa a'udhu bika min sharri ma fi hadhal-yawm wa sharri ma ba'dah.",
        "translation": "We have entered a new day and with it all dominion belongs to Allah. Praise is to Allah. None has the right to be worshipped but Allah alone, Who has no partner. To Allah belongs the dominion, and to Him is all praise, and He has power over everything. My Lord, I ask You for the good of this day and the good that follows it, and I seek refuge in You from the evil of this day and the evil that follows it.",
        "source": "Sahih Muslim 2723",
        "repetitions": 1,
        "best_time": "After Fajr, upon waking",
        "difficulty": "Beginner",
        "est_duration_sec": 30,
        "rizq_benefit": "Asking for the good/provision of the day ahead",
        "xp_value": 30,
        "category": "morning",
    },
    {
        "title": "Dua for Provision Upon Leaving Home",
        "title_ar": "دعاء الخروج من المنزل",
        "arabic_text": "بِسْمِ اللَّهِ، تَوَكَّلْتُ عَلَى اللَّهِ، لَا حَوْلَ وَلَا قُوَّةَ إِلَّا بِاللَّهِ",
        "transliteration": "Bismillah, tawakkaltu 'alallah, la hawla wa la quwwata illa billah.",
        "translation": "In the name of Allah, I have placed my trust in Allah; there is no power and no strength except with Allah.",
        "source": "Abu Dawud 5095",
        "repetitions": 1,
        "best_time": "Before going to work, business, job search",
        "difficulty": "Beginner",
        "est_duration_sec": 5,
        "rizq_benefit": "Reliance on Allah for sustenance during daily activities",
        "xp_value": 15,
        "category": "morning",
    },
    {
        "title": "The Master Dua for Provision (Sayyidul Istighfar)",
        "title_ar": "سيد الاستغفار",
        "arabic_text": "اللَّهُمَّ أَنْتَ رَبِّي لَا إِلَهَ إِلَّا أَنْتَ، خَلَقْتَنِي وَأَنَا عَبْدُكَ، وَأَنَا عَلَى عَهْدِكَ وَوَعْدِكَ مَا اسْتَطَعْتُ، أَعُوذُ بِكَ مِنْ شَرِّ مَا صَنَعْتُ، أَبُوءُ لَكَ بِنِعْمَتِكَ عَلَيَّ، وَأَبُوءُ بِذَنْبِي، فَاغْفِرْ لِي فَإِنَّهُ لَا يَغْفِرُ الذُّنُوبَ إِلَّا أَنْتَ",
        "transliteration": "Allahumma Anta Rabbi, la ilaha illa Ant, khalaqtani wa ana 'abduk, wa ana 'ala 'ahdika wa wa'dika mas-tata't, a'udhu bika min sharri ma sana't, abu'u laka bi-ni'matika 'alayy, wa abu'u bi-dhanbi, faghfir li fa-innahu la yaghfirudh-dhunuba illa Ant.",
        "translation": "O Allah, You are my Lord. There is no god but You. You created me and I am Your servant, and I am keeping my covenant and promise to You as much as I can. I seek refuge in You from the evil of what I have done. I acknowledge Your blessings upon me, and I acknowledge my sins. So forgive me, for none forgives sins except You.",
        "source": "Sahih Al-Bukhari 6306",
        "repetitions": 1,
        "best_time": "After Fajr",
        "difficulty": "Intermediate",
        "est_duration_sec": 40,
        "rizq_benefit": "Acknowledging Allah's blessings opens doors to more provision",
        "xp_value": 40,
        "category": "rizq",
    },
    {
        "title": "Dua for Halal Provision",
        "title_ar": "دعاء الرزق الحلال",
        "arabic_text": "اللَّهُمَّ اكْفِنِي بِحَلَالِكَ عَنْ حَرَامِكَ، وَأَغْنِنِي بِفَضْلِكَ عَمَّنْ سِوَاكَ",
        "transliteration": "Allahumma-kfini bi-halalika 'an haramik, wa aghnini bi-fadlika 'amman siwak.",
        "translation": "O Allah, make what is lawful enough for me, as opposed to what is unlawful, and spare me by Your grace from need of others.",
        "source": "At-Tirmidhi 3563",
        "repetitions": 3,
        "best_time": "Anytime, especially when seeking income",
        "difficulty": "Beginner",
        "est_duration_sec": 15,
        "rizq_benefit": "Directly asks for lawful, blessed provision",
        "xp_value": 25,
        "category": "rizq",
    },
    {
        "title": "Evening Protection Dua",
        "title_ar": "دعاء المساء",
        "arabic_text": "أَمْسَيْنَا وَأَمْسَى الْمُلْكُ لِلَّهِ، وَالْحَمْدُ لِلَّهِ، لَا إِلَهَ إِلَّا اللَّهُ وَحْدَهُ لَا شَرِيكَ لَهُ، لَهُ الْمُلْكُ وَلَهُ الْحَمْدُ وَهُوَ عَلَى كُلِّ شَيْءٍ قَدِيرٌ، رَبِّ أَسْأَلُكَ خَيْرَ مَا فِي هَذِهِ اللَّيْلَةِ وَخَيْرَ مَا بَعْدَهَا، وَأَعُوذُ بِكَ مِنْ شَرِّ مَا فِي هَذِهِ اللَّيْلَةِ وَشَرِّ مَا بَعْدَهَا",
        "transliteration": "Amsayna wa amsal-mulku lillah, walhamdu lillah, la ilaha illallahu wahdahu la sharika lah, lahul-mulku wa lahul-hamd, wa Huwa 'ala kulli shay'in Qadir. Rabbi as'aluka khayra ma fi hadhihil-laylah wa khayra ma ba'daha, wa a'udhu bika min sharri ma fi hadhihil-laylah wa sharri ma ba'daha.",
        "translation": "We have entered the evening and the kingdom belongs to Allah. Praise is to Allah. There is no god but Allah alone, with no partner. To Him belongs the dominion and all praise, and He has power over everything. My Lord, I ask You for the good of this night and the good that follows it, and I seek refuge in You from the evil of this night and the evil that follows it.",
        "source": "Sahih Muslim 2723",
        "repetitions": 1,
        "best_time": "After Maghrib, before sleep",
        "difficulty": "Beginner",
        "est_duration_sec": 30,
        "rizq_benefit": "Protection of nighttime provision and opportunities",
        "xp_value": 30,
        "category": "evening",
    },
    {
        "title": "Dua for Relief from Debt",
        "title_ar": "دعاء التخلص من الدين",
        "arabic_text": "اللَّهُمَّ إِنِّي أَعُوذُ بِكَ مِنَ الْهَمِّ وَالْحَزَنِ، وَأَعُوذُ بِكَ مِنَ الْعَجْزِ وَالْكَسَلِ، وَأَعُوذُ بِكَ مِنَ الْجُبْنِ وَالْبُخْلِ، وَأَعُوذُ بِكَ مِنْ غَلَبَةِ الدَّيْنِ وَقَهْرِ الرِّجَالِ",
        "transliteration": "Allahumma inni a'udhu bika minal-hammi wal-hazan, wa a'udhu bika minal-'ajzi wal-kasal, wa a'udhu bika minal-jubni wal-bukhl, wa a'udhu bika min ghalabatid-dayni wa qahrir-rijal.",
        "translation": "O Allah, I seek refuge in You from worry and grief, I seek refuge in You from helplessness and laziness, I seek refuge in You from cowardice and miserliness, and I seek refuge in You from being overpowered by debt and from the oppression of men.",
        "source": "Sahih Al-Bukhari 6363",
        "repetitions": 3,
        "best_time": "After Fajr, during hardship",
        "difficulty": "Intermediate",
        "est_duration_sec": 25,
        "rizq_benefit": "Removes obstacles to provision (debt, laziness, fear)",
        "xp_value": 35,
        "category": "rizq",
    },
    {
        "title": "Dua for Beneficial Knowledge & Halal Provision",
        "title_ar": "دعاء العلم النافع والرزق الطيب",
        "arabic_text": "اللَّهُمَّ إِنِّي أَسْأَلُكَ عِلْمًا نَافِعًا، وَرِزْقًا طَيِّبًا، وَعَمَلًا مُتَقَبَّلًا",
        "transliteration": "Allahumma inni as'aluka 'ilman nafi'a, wa rizqan tayyiba, wa 'amalan mutaqabbala.",
        "translation": "O Allah, I ask You for beneficial knowledge, pure (lawful) provision, and accepted deeds.",
        "source": "Ibn Majah 925",
        "repetitions": 1,
        "best_time": "After Fajr prayer",
        "difficulty": "Beginner",
        "est_duration_sec": 15,
        "rizq_benefit": "Directly asks for pure, halal provision",
        "xp_value": 30,
        "category": "morning",
    },
    {
        "title": "Dua for Barakah in Provision",
        "title_ar": "دعاء البركة في الرزق",
        "arabic_text": "اللَّهُمَّ بَارِكْ لَنَا فِيمَا رَزَقْتَنَا",
        "transliteration": "Allahumma barik lana fima razaqtana.",
        "translation": "O Allah, bless us in what You have provided for us.",
        "source": "Abu Dawud 3730",
        "repetitions": 1,
        "best_time": "Before meals, when receiving income",
        "difficulty": "Beginner",
        "est_duration_sec": 5,
        "rizq_benefit": "Requesting blessing/multiplication in existing provision",
        "xp_value": 15,
        "category": "gratitude",
    },
    {
        "title": "Dua of Prophet Yunus (Distress to Relief)",
        "title_ar": "دعاء يونس عليه السلام",
        "arabic_text": "لَا إِلَهَ إِلَّا أَنْتَ سُبْحَانَكَ إِنِّي كُنْتُ مِنَ الظَّالِمِينَ",
        "transliteration": "La ilaha illa Anta, Subhanaka, inni kuntu minaz-zalimin.",
        "translation": "There is no god but You. Glory be to You! Indeed, I have been of the wrongdoers.",
        "source": "Quran 21:87, At-Tirmidhi 3505",
        "repetitions": 3,
        "best_time": "During any difficulty, financial hardship",
        "difficulty": "Beginner",
        "est_duration_sec": 10,
        "rizq_benefit": "Opens doors when all seems closed",
        "xp_value": 25,
        "category": "rizq",
    },
]

# (nombre, slug, descripción, emoji, minutos, premium, destacado, orden,
#  [(fragmento del título del dua, franja, orden)])
DEFAULT_JOURNEYS = [
    ("Rizq Seeker", "rizq-seeker",
     "Increase your provision and blessings through powerful duas for wealth and abundance.",
     "/images/icons/The Rizq Seeker.png", 15, False, True, 1,
     [("Beneficial Knowledge", "morning", 1), ("Leaving Home", "morning", 2),
      ("Dua for Halal Provision", "anytime", 3), ("Barakah", "anytime", 4),
      ("Sayyidul Istighfar", "evening", 5)]),
    ("Morning Warrior", "morning-warrior",
     "Start every day with purpose through essential morning adhkar and protection.",
     "/images/icons/Morning Warrior.png", 12, False, True, 2,
     [("Ayatul Kursi", "morning", 1), ("Morning Protection", "morning", 2),
      ("Sayyidul Istighfar", "morning", 3), ("Beneficial Knowledge", "morning", 4),
      ("Leaving Home", "morning", 5)]),
    ("Debt Freedom", "debt-freedom",
     "Find relief from debt and financial stress through targeted supplications.",
     "/images/icons/default-journey.png", 10, False, True, 3,
     [("Relief from Debt", "morning", 1), ("Sayyidul Istighfar", "morning", 2),
      ("Prophet Yunus", "anytime", 3), ("Dua for Halal Provision", "evening", 4)]),
    ("Evening Peace", "evening-peace",
     "End each day in gratitude and protection with evening remembrance.",
     "/images/icons/Evening Peace.png", 10, False, False, 4,
     [("Ayatul Kursi", "evening", 1), ("Evening Protection", "evening", 2),
      ("Sayyidul Istighfar", "evening", 3), ("Barakah", "evening", 4)]),
    ("Gratitude Builder", "gratitude-builder",
     "Cultivate a thankful heart and abundance mindset.",
     "/images/icons/Gratitude Builder.png", 10, False, False, 5,
     [("Sayyidul Istighfar", "morning", 1), ("Barakah", "morning", 2),
      ("Beneficial Knowledge", "anytime", 3), ("Prophet Yunus", "evening", 4)]),
]


def _validate_dua(data: dict) -> dict:
    """
    Validación en la frontera: franja y dificultad deben ser valores del
    enum, el XP no puede ser negativo.
    """
    if data.get("difficulty") is not None:
        data["difficulty"] = Difficulty(data["difficulty"]).value
    if data.get("xp_value", 0) < 0:
        raise ValueError(f"xp_value negativo en '{data['title']}'")
    return data


def seed_catalog(db: Session):
    """
    Inserta el catálogo inicial si no existe.
    Se ejecuta al arrancar la aplicación; es seguro repetirlo.
    """
    categories = {c.slug: c for c in db.query(Category).all()}
    for name, slug, description in DEFAULT_CATEGORIES:
        if slug not in categories:
            categories[slug] = Category(name=name, slug=slug, description=description)
            db.add(categories[slug])
    db.flush()

    duas = {d.title: d for d in db.query(Dua).all()}
    for dua_def in DEFAULT_DUAS:
        data = _validate_dua(dict(dua_def))
        if data["title"] in duas:
            continue
        category_slug = data.pop("category")
        dua = Dua(category_id=categories[category_slug].id, **data)
        db.add(dua)
        duas[dua.title] = dua
    db.flush()

    existing_slugs = {slug for (slug,) in db.query(Journey.slug).all()}
    for name, slug, description, emoji, minutes, premium, featured, order, items in DEFAULT_JOURNEYS:
        if slug in existing_slugs:
            continue
        journey = Journey(
            name=name, slug=slug, description=description, emoji=emoji,
            estimated_minutes=minutes, is_premium=premium, is_featured=featured,
            sort_order=order,
        )
        daily_xp = 0
        for fragment, slot, sort_order in items:
            dua = next(d for title, d in duas.items() if fragment in title)
            journey.duas.append(JourneyDua(dua_id=dua.id, time_slot=TimeSlot(slot).value, sort_order=sort_order))
            daily_xp += dua.xp_value
        journey.daily_xp = daily_xp
        db.add(journey)

    db.commit()
    logger.info(f"✅ Catálogo verificado: {len(DEFAULT_DUAS)} duas, {len(DEFAULT_JOURNEYS)} journeys")
