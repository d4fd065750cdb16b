"""
Constants and message templates for cycle and notification services.
"""
from typing import Dict, List, Tuple

MAX_CYCLE_LENGTH = 100
MAX_PERIOD_HISTORY = 12
PLAUSIBLE_AVERAGE_CYCLE_RANGE: Tuple[int, int] = (21, 45)
FERTILE_DAYS_BEFORE_OVULATION = 5
FERTILITY_NOTIFICATION_MAX_AGE = 50
FERTILITY_ADVANCED_AGE = 45

# Returned by the context builder when a user has never logged
NO_LOG_DAYS = 999

LOW_SLEEP_HOURS = 6
VERY_LOW_SLEEP_HOURS = 5
HIGH_STRESS_LEVEL = 4
MAX_STRESS_LEVEL = 5

STREAK_MILESTONES = (3, 7, 14)

# Conception probability (%) by day relative to ovulation
CONCEPTION_PROBABILITY_BY_OFFSET: Dict[int, int] = {
    -5: 4,
    -4: 10,
    -3: 16,
    -2: 27,
    -1: 31,
    0: 33,
    1: 12,
}

# BMI category thresholds, upper bound exclusive
BMI_CATEGORIES: List[Tuple[float, str]] = [
    (18.5, "Bajo peso"),
    (25.0, "Normal"),
    (30.0, "Sobrepeso"),
    (float("inf"), "Obesidad"),
]

BMI_FERTILITY_IMPACT = {
    "Bajo peso": "Un peso bajo puede alterar la ovulación",
    "Normal": "Tu peso favorece un ciclo hormonal estable",
    "Sobrepeso": "El sobrepeso puede afectar la regularidad de tu ciclo",
    "Obesidad": "La obesidad se asocia a ciclos irregulares y menor fertilidad",
}

# Months trying after which a specialist visit is recommended, by age bracket
MONTHS_TRYING_THRESHOLD_UNDER_35 = 12
MONTHS_TRYING_THRESHOLD_35_PLUS = 6

DISCLAIMERS = {
    "ventana_fertil": (
        "Estas fechas son estimaciones basadas en la duración media de tu ciclo "
        "y no sustituyen el consejo médico."
    ),
    "ovulacion": (
        "El día de ovulación es una estimación. Los test de LH y la temperatura "
        "basal ayudan a confirmarlo."
    ),
    "imc": "El IMC es una referencia general y no tiene en cuenta tu composición corporal.",
    "edad": "Consulta siempre con tu especialista antes de tomar decisiones sobre tu salud.",
}

# Order in which pending form reminders are chosen; only one is sent per pass
FORM_REMINDER_ORDER = [
    ("F0", "partial"),
    ("F0", "not_started"),
    ("FUNCTION", "partial"),
    ("FOOD", "partial"),
    ("FLORA", "partial"),
    ("FLOW", "partial"),
    ("FUNCTION", "not_started"),
    ("FOOD", "not_started"),
    ("FLORA", "not_started"),
    ("FLOW", "not_started"),
]

MESSAGES: Dict[str, Dict[str, str]] = {
    # Profile
    "WELCOME-1": {
        "title": "¡Bienvenida a FertyFit! 🌸",
        "message": "Tu ficha inicial está lista. A partir de hoy te acompañaremos día a día en tu camino de fertilidad.",
    },
    "F0-CYCLE-1": {
        "title": "Completa los datos de tu ciclo",
        "message": (
            "Aún no conocemos la duración de tu ciclo o la fecha de tu última regla. "
            "Mientras tanto usamos un ciclo de {cycle_length} días, así que las fechas son orientativas."
        ),
    },
    "F0-TRYING-1": {
        "title": "Es buen momento para hablar con un especialista",
        "message": (
            "Llevas {months} meses buscando embarazo. A partir de este punto se recomienda "
            "una valoración médica de fertilidad."
        ),
    },
    "IMC-1-LOW": {
        "title": "⚠️ Tu IMC está bajo",
        "message": "Tu IMC es {value} (bajo peso). {impact}. Considera consultar con un nutricionista.",
    },
    "IMC-1-NORMAL": {
        "title": "✅ Tu IMC está en rango saludable",
        "message": "Tu IMC es {value}. {impact}. ¡Sigue así!",
    },
    "IMC-1-OVER": {
        "title": "⚖️ Tu IMC indica sobrepeso",
        "message": "Tu IMC es {value}. {impact}. Pequeños cambios en tu alimentación pueden mejorar tu fertilidad.",
    },
    "IMC-1-OBESE": {
        "title": "⚠️ Tu IMC indica obesidad",
        "message": "Tu IMC es {value} ({category}). {impact}. Te recomendamos consultar con un especialista en nutrición.",
    },
    "EDAD-1": {
        "title": "🌸 Programa de Menopausia",
        "message": (
            "A los 50 años, la mayoría de mujeres están en menopausia o perimenopausia. "
            "El embarazo natural es extremadamente raro y conlleva riesgos significativos.\n\n"
            "Te invitamos a conocer nuestro programa especializado en menopausia."
        ),
    },

    # Daily log
    "D-1": {
        "title": "Has dormido muy poco",
        "message": "Anoche dormiste {hours} horas. Dormir menos de 5 horas altera tus hormonas; intenta descansar hoy.",
    },
    "D-2": {
        "title": "Hoy tu estrés está al máximo",
        "message": "Registraste un nivel de estrés 5 de 5. Regálate unos minutos de respiración o un paseo.",
    },
    "D-3": {
        "title": "Test de LH positivo",
        "message": "Tu test de LH es positivo: la ovulación suele ocurrir en las próximas 24-36 horas.",
    },
    "D-4": {
        "title": "Moco fértil detectado",
        "message": "El moco tipo clara de huevo indica que estás en tus días más fértiles.",
    },
    "ENG-2": {
        "title": "¡Qué constancia! 🔥",
        "message": "Llevas {streak} días seguidos registrando tu salud. Este tipo de compromiso marca una gran diferencia.",
    },
    "W3-SLEEP-1": {
        "title": "Tres noches durmiendo poco",
        "message": "Llevas 3 días durmiendo menos de 6 horas. Tu cuerpo necesita recuperar descanso.",
    },
    "W3-STRESS-1": {
        "title": "Tres días de estrés alto",
        "message": "Tu estrés ha estado alto 3 días seguidos. ¿Probamos una rutina de relajación esta noche?",
    },
    "W14-ALCOHOL-1": {
        "title": "Revisa tu consumo de alcohol",
        "message": "Has registrado alcohol {days} de los últimos 14 días. Reducirlo mejora la calidad ovocitaria.",
    },
    "W14-STREAK-1": {
        "title": "Dos semanas de registros 🎉",
        "message": "Has registrado {days} de los últimos 14 días. Con estos datos tus informes son mucho más precisos.",
    },

    # Daily check: fertile window and period
    "VF-1": {
        "title": "Tu ventana fértil está cerca",
        "message": "En 2 días comienza tu ventana fértil. Es un buen momento para observar tus señales y preparar tu ciclo.",
    },
    "VF-1-ADVANCED": {
        "title": "Tu ventana fértil está cerca",
        "message": (
            "En 2 días comenzarán tus días más fértiles. Recuerda que después de los 45 años "
            "la fertilidad disminuye significativamente y los riesgos en el embarazo aumentan."
        ),
    },
    "VF-2": {
        "title": "Hoy es tu pico de fertilidad",
        "message": (
            "Estás en el día de mayor probabilidad de embarazo de tu ciclo ({probability}%). "
            "Escucha a tu cuerpo y cuídalo especialmente hoy."
        ),
    },
    "VF-2-ADVANCED": {
        "title": "Hoy es tu pico de fertilidad",
        "message": (
            "Hoy es tu día más fértil, aunque a esta edad la probabilidad de concepción es menor. "
            "Consulta con tu médico sobre tu salud reproductiva."
        ),
    },
    "VF-3": {
        "title": "Fin de tu ventana fértil",
        "message": "Tu ventana fértil ha terminado. Ahora tu cuerpo entra en una fase distinta. Te acompañamos paso a paso.",
    },
    "CYCLE-1": {
        "title": "¿Te vino la regla hoy?",
        "message": "Tu ciclo promedio de {cycle_length} días ha concluido. Confírmalo para ajustar tu ciclo y mejorar tus informes.",
    },
    "CYCLE-1-LATE": {
        "title": "¿Te vino la regla hoy?",
        "message": (
            "Tu ciclo promedio de {cycle_length} días ha concluido hace {days_late} día{plural}. "
            "Confírmalo para ajustar tu ciclo y mejorar tus informes."
        ),
    },
    "PM-1": {
        "title": "Tu menstruación se acerca",
        "message": "Según tu ciclo, tu menstruación podría llegar en 2 días ({next_date}). Si notas cambios, puedes registrarlos.",
    },
    "PM-2": {
        "title": "Tu menstruación se ha retrasado",
        "message": "Han pasado 5 días desde la fecha esperada. ¿Quieres actualizar tu ciclo?",
    },

    # Daily check: forms
    "FORM-F0-NEW": {
        "title": "Completa tu ficha inicial",
        "message": "Aún no has completado tu ficha de salud. Es clave para personalizar tus informes y tu FertyScore.",
    },
    "FORM-F0-PARTIAL": {
        "title": "Retoma tu ficha de salud",
        "message": "Dejaste tu ficha inicial a medias. Si la completas, podremos entender tu caso con mucha más precisión.",
    },
    "FORM-PILLAR-NEW": {
        "title": "Aún falta un pilar por completar",
        "message": "Si completas el pilar {pillar} podremos mejorar tus análisis y ajustar mejor tus recomendaciones.",
    },
    "FORM-PILLAR-PARTIAL": {
        "title": "Termina tu pilar de salud",
        "message": "Empezaste el pilar {pillar}. Completarlo hará que tus informes y tu FertyScore reflejen tu realidad.",
    },

    # Daily check: adherence, habits, learning, summaries
    "ENG-1": {
        "title": "Te echamos de menos en tu registro",
        "message": "Hace {days} días que no registras tu ciclo ni tus hábitos. Volver a hacerlo hará tu FertyScore más preciso.",
    },
    "ENG-1-NEVER": {
        "title": "Empieza tu registro diario",
        "message": "Todavía no has hecho ningún registro diario. Un minuto al día basta para entender mejor tu ciclo.",
    },
    "HAB-STRESS-1": {
        "title": "Tu cuerpo pide una pausa",
        "message": "Has tenido varios días de estrés elevado. Esto puede afectar tu ovulación. ¿Revisamos tu pilar FLOW?",
    },
    "HAB-SLEEP-1": {
        "title": "Tu descanso está bajando",
        "message": "Dormir poco varios días reduce la calidad ovulatoria. Te ayudamos a mejorarlo paso a paso.",
    },
    "HAB-ALCOHOL-1": {
        "title": "Cuida tu fertilidad esta semana",
        "message": "Has consumido alcohol varios días. No pasa nada, pero es un buen momento para volver al equilibrio.",
    },
    "HAB-COMBO-1": {
        "title": "Tu fertilidad necesita calma",
        "message": "Estrés, poco sueño y alcohol han coincidido esta semana. Te proponemos pautas para recuperar bienestar.",
    },
    "LEARN-1": {
        "title": "Retoma tu aprendizaje",
        "message": "Dejaste el módulo «{module}» a medias. Completarlo te ayudará a entender mejor tu ciclo.",
    },
    "LEARN-2": {
        "title": "¡Lección completada! 🎉",
        "message": "Has dado un paso importante en tu camino de fertilidad. Llevas un {percent}% del método.",
    },
    "LEARN-3": {
        "title": "¡Has completado el método! 🏆",
        "message": "Has terminado todas las lecciones. Ya tienes todas las herramientas para entender tu fertilidad.",
    },
    "SUMMARY-WEEKLY-1": {
        "title": "Tu resumen semanal está listo",
        "message": "Hemos analizado tu semana. Aquí tienes un informe claro para seguir entendiendo tu fertilidad.",
    },
    "SUMMARY-MONTHLY-1": {
        "title": "Informe mensual disponible",
        "message": "Un mes entero de datos. Ya puedes ver tu progreso real en tus pilares y tu FertyScore.",
    },
}
