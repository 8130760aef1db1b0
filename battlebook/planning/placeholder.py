"""
Sample battle text used when a request asks for the placeholder instead of its own input.
"""

BATTLE_PLACEHOLDER = (
    "Beginning in June 1863, General Lee began to move the Army of Northern Virginia north "
    "through Maryland. The Union army—the Army of the Potomac—traveled north to end up "
    "alongside the Confederate forces. The two armies met at Gettysburg, Pennsylvania, where "
    "Confederate forces had gone to secure supplies. The resulting battle lasted three days, "
    "July 1–3 (Figure 15.15) and remains the biggest and costliest battle ever fought in North "
    "America. The climax of the Battle of Gettysburg occurred on the third day. In the morning, "
    "after a fight lasting several hours, Union forces fought back a Confederate attack on "
    "Culp’s Hill, one of the Union’s defensive positions. To regain a perceived advantage "
    "and secure victory, Lee ordered a frontal assault, known as Pickett’s Charge (for "
    "Confederate general George Pickett), against the center of the Union lines on Cemetery "
    "Ridge. Approximately fifteen thousand Confederate soldiers took part, and more than half "
    "lost their lives, as they advanced nearly a mile across an open field to attack the "
    "entrenched Union forces. In all, more than a third of the Army of Northern Virginia had "
    "been lost, and on the evening of July 4, Lee and his men slipped away in the rain. General "
    "George Meade did not pursue them. Both sides suffered staggering losses. Total casualties "
    "numbered around twenty-three thousand for the Union and some twenty-eight thousand among "
    "the Confederates. With its defeats at Gettysburg and Vicksburg, both on the same day, the "
    "Confederacy lost its momentum. The tide had turned in favor of the Union in both the east "
    "and the west."
)

__all__ = ["BATTLE_PLACEHOLDER"]
